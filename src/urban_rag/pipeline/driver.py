"""
Pipeline driver: the loop that turns capped, resumable batch calls into full
coverage of a candidate URL list (typically one year of a gazette).

URL discovery is not done here; callers hand in the candidate URLs.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from tqdm import tqdm

from urban_rag.database.document_store import DocumentStore
from urban_rag.pipeline.batch_runner import BatchRunner
from urban_rag.pipeline.result import BatchRunResult
from urban_rag.pipeline.settings import PipelineSettings
from urban_rag.pipeline.stages import StageExecutors
from urban_rag.utils.logger import get_logger

logger = get_logger("driver")


def gazette_source(source: str) -> str:
  """Source tag used for gazette campaigns, e.g. gazzetta_regioni"""
  return source if source.startswith("gazzetta_") else f"gazzetta_{source}"


@dataclass
class BulkScrapeResult:
  source: str
  total_found: int = 0
  attempted: int = 0
  scraped: int = 0
  remaining: int = 0
  results: List[Dict[str, Any]] = field(default_factory=list)
  failed_urls: List[str] = field(default_factory=list)

  def to_dict(self) -> Dict[str, Any]:
    return {
      "source": self.source,
      "totalFound": self.total_found,
      "attempted": self.attempted,
      "processed": self.scraped,
      "remaining": self.remaining,
      "failed": len(self.failed_urls),
      "results": self.results,
      "message": f"Scraped {self.scraped}/{self.attempted} documents, {self.remaining} remaining",
    }


@dataclass
class DrainResult:
  stage: str
  iterations: int = 0
  attempted: int = 0
  succeeded: int = 0

  def add(self, batch: BatchRunResult) -> None:
    self.iterations += 1
    self.attempted += batch.attempted
    self.succeeded += batch.succeeded


@dataclass
class YearReport:
  year: int
  scrape_iterations: int = 0
  scraped: int = 0
  remaining: int = 0
  failed_urls: List[str] = field(default_factory=list)
  processed: Optional[DrainResult] = None
  embedded: Optional[DrainResult] = None
  stats: Dict[str, Any] = field(default_factory=dict)

  @property
  def success(self) -> bool:
    return self.remaining == 0


class PipelineDriver:
  """Scrape, then drain the process and embed queues, then report"""

  def __init__(
      self,
      store: DocumentStore,
      executors: StageExecutors,
      runner: BatchRunner,
      settings: Optional[PipelineSettings] = None,
      sleep: Callable[[float], None] = time.sleep,
      show_progress: bool = False):
    self.store = store
    self.executors = executors
    self.runner = runner
    self.settings = settings or PipelineSettings()
    self.sleep = sleep
    self.show_progress = show_progress

  def bulk_scrape(self, urls: Iterable[str], source: str, max_documents: Optional[int] = None,
                  skip_urls: Optional[Set[str]] = None) -> BulkScrapeResult:
    """
    Scrape at most max_documents not-yet-stored URLs of the candidate list.

    Already stored URLs (and skip_urls) are left out, so calling this again
    with the same list picks up where the previous call stopped.
    """
    if max_documents is None:
      max_documents = self.settings.bulk_max_documents
    skip_urls = skip_urls or set()
    candidates = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
    result = BulkScrapeResult(source=source, total_found=len(candidates))

    pending = [
      u for u in candidates
      if u not in skip_urls and self.store.find_by_url(u) is None
    ]
    batch = pending[:max(max_documents, 0)]
    result.attempted = len(batch)
    result.remaining = len(pending) - len(batch)
    logger.info(f"Bulk scrape '{source}': {len(candidates)} found, {len(pending)} new, scraping {len(batch)}")

    for position, url in enumerate(tqdm(batch, desc="Scraping", disable=not self.show_progress)):
      outcome = self.executors.scrape(url, source, min_content_length=self.settings.bulk_min_content_length)
      entry = {"url": url, "success": outcome.success, "message": outcome.message}
      if outcome.success:
        result.scraped += 1
        entry["documentId"] = outcome.value.id
      else:
        entry["error"] = outcome.error.value
        result.failed_urls.append(url)
      result.results.append(entry)

      if position < len(batch) - 1:
        self.sleep(self.settings.scrape_item_delay)

    if result.remaining > 0:
      logger.info(f"⏳ {result.remaining} documents remaining for future calls")
    return result

  def drain(self, stage: str, batch_size: Optional[int] = None, max_iterations: Optional[int] = None, delay: float = 0.0) -> DrainResult:
    """Run batches while the previous one advanced at least one document"""
    if max_iterations is None:
      max_iterations = self.settings.max_iterations
    drained = DrainResult(stage=stage)
    while drained.iterations < max_iterations:
      if drained.iterations > 0:
        self.sleep(delay)
      batch = self.runner.run_batch(stage, batch_size)
      drained.add(batch)
      if batch.succeeded == 0:
        break
    return drained

  def process_complete_year(self, year: int, urls: List[str], source: str = "regioni",
                            max_iterations: Optional[int] = None) -> YearReport:
    if max_iterations is None:
      max_iterations = self.settings.max_iterations
    tag = gazette_source(source)
    report = YearReport(year=year)
    logger.info(f"Complete processing for year {year} ({tag})")

    # URLs that failed once in this run are not retried by the following iterations
    failed: Set[str] = set()
    scrape = self.bulk_scrape(urls, tag, skip_urls=failed)
    failed.update(scrape.failed_urls)
    report.scrape_iterations = 1
    report.scraped = scrape.scraped
    while scrape.remaining > 0 and report.scrape_iterations < max_iterations:
      logger.info(f"Iteration {report.scrape_iterations}: {scrape.remaining} documents remaining")
      self.sleep(self.settings.iteration_delay)
      scrape = self.bulk_scrape(urls, tag, skip_urls=failed)
      failed.update(scrape.failed_urls)
      report.scrape_iterations += 1
      report.scraped += scrape.scraped
    report.remaining = scrape.remaining
    report.failed_urls = sorted(failed)

    report.processed = self.drain(
      "process", self.settings.process_batch_size, max_iterations, self.settings.process_drain_delay
    )
    report.embedded = self.drain(
      "embed", self.settings.embed_queue_batch_size, max_iterations, self.settings.embed_drain_delay
    )
    report.stats = self.store.aggregate_stats()
    logger.info(
      f"✓ year {year}: scraped {report.scraped}, processed {report.processed.succeeded}, "
      f"embedded {report.embedded.succeeded}, {report.remaining} left"
    )
    return report

  def process_multiple_years(self, urls_by_year: Dict[int, List[str]], source: str = "regioni") -> List[YearReport]:
    """Newest year first, stopping at the first year that cannot be completed"""
    reports = []
    years = sorted(urls_by_year, reverse=True)
    for position, year in enumerate(years):
      report = self.process_complete_year(year, urls_by_year[year], source)
      reports.append(report)
      if not report.success:
        logger.error(f"✗ failed to complete year {year}, stopping")
        break
      if position < len(years) - 1:
        logger.info(f"Waiting {self.settings.year_delay}s before next year...")
        self.sleep(self.settings.year_delay)
    return reports
