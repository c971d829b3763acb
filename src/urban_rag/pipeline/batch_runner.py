import time
from typing import Callable, Dict, Optional

from urban_rag.database.document_store import DocumentStore, check_pending_stage
from urban_rag.pipeline.result import BatchRunResult, ItemResult
from urban_rag.pipeline.settings import PipelineSettings
from urban_rag.pipeline.stages import StageExecutors
from urban_rag.utils.logger import get_logger

logger = get_logger("batch")


class BatchRunner:
  """
  Advance a bounded slice of eligible documents through one stage.

  Each call is independent: pick up to batch_size pending documents, run
  the stage executor on each in selection order, and report. Calling it
  again until nothing is pending drains the queue. There is no lease on the
  selection; two overlapping runs may pick the same document, which the
  idempotent executors turn into a no-op.
  """

  def __init__(
      self,
      store: DocumentStore,
      executors: StageExecutors,
      settings: Optional[PipelineSettings] = None,
      sleep: Callable[[float], None] = time.sleep):
    self.store = store
    self.executors = executors
    self.settings = settings or PipelineSettings()
    self.sleep = sleep
    self._operations = {
      "process": executors.process,
      "embed": executors.embed,
    }
    # Embedding is the rate-sensitive stage
    self._item_delays = {
      "process": self.settings.process_item_delay,
      "embed": self.settings.embed_queue_item_delay,
    }
    self._batch_sizes = {
      "process": self.settings.process_batch_size,
      "embed": self.settings.embed_queue_batch_size,
    }

  def run_batch(self, stage: str, batch_size: Optional[int] = None) -> BatchRunResult:
    """batch_size defaults to the stage's configured size"""
    check_pending_stage(stage)
    if batch_size is None:
      batch_size = self._batch_sizes[stage]
    if batch_size < 1:
      raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    result = BatchRunResult(stage=stage)
    documents = self.store.select_pending(stage, batch_size)
    if not documents:
      logger.info(f"ℹ no documents pending for '{stage}'")
      return result

    logger.info(f"Running '{stage}' on a batch of {len(documents)} documents")
    operation = self._operations[stage]

    for position, document in enumerate(documents):
      try:
        outcome = operation(document.id)
        item = ItemResult(
          document_id = document.id,
          title = document.title,
          success = outcome.success,
          error = outcome.error.value if outcome.error else None,
          message = outcome.message
        )
      except Exception as e:
        # Executors report failures as results; anything else is still isolated
        logger.error(f"✗ error running '{stage}' on {document.id}: {e}")
        item = ItemResult(
          document_id = document.id,
          title = document.title,
          success = False,
          error = "unexpected_error",
          message = str(e)
        )

      result.add(item)
      if item.success:
        logger.info(f"✓ {stage}: {document.title}")
      else:
        logger.warning(f"✗ {stage} failed for {document.title}: {item.message}")

      if position < len(documents) - 1:
        self.sleep(self._item_delays[stage])

    logger.info(f"{stage}: {result.succeeded}/{result.attempted} documents")
    return result

  def queue_status(self) -> Dict[str, int]:
    return self.store.queue_status()
