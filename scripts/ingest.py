#!/usr/bin/env python3
"""
Document Ingestion Script

Drives the document lifecycle: scrape -> process (chunk) -> embed.

Candidate URL files hold one URL per line; blank lines and lines starting
with '#' are ignored. A year file for 'pipeline' is a YAML mapping of
year -> list of URLs:

2024:
  - https://www.gazzettaufficiale.it/.../atto1.pdf
  - https://www.gazzettaufficiale.it/.../atto2.pdf
2023:
  - ...
"""

import json
import sys
import yaml
import click
from pathlib import Path
from typing import List
from dotenv import load_dotenv
from urban_rag.pipeline.driver import gazette_source
from urban_rag.pipeline.factory import build_pipeline
from urban_rag.utils.config import CONFIG, load_config
from urban_rag.utils.logger import setup_logger_from_config


def read_url_file(path: str) -> List[str]:
  """One URL per line, '#' comments allowed"""
  lines = Path(path).read_text(encoding='utf-8').splitlines()
  return [line.strip() for line in lines if line.strip() and not line.strip().startswith('#')]


def echo_json(data) -> None:
  click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option('--config', 'config_path', default=None, help='Config file path')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config_path, debug):
  """Ingest regulatory documents into MongoDB and the vector index"""
  load_dotenv('.env')
  config = load_config(config_path) if config_path else CONFIG
  setup_logger_from_config(config, debug=debug)
  ctx.obj = {"config": config}


@cli.command()
@click.argument('url')
@click.option('--source', default='manual', help='Source tag stored on the document')
@click.pass_context
def scrape(ctx, url, source):
  """Fetch and store a single URL"""
  pipeline = build_pipeline(ctx.obj["config"], with_embeddings=False)
  result = pipeline.executors.scrape(url, source)
  echo_json(result.to_dict())
  sys.exit(0 if result.success else 1)


@cli.command()
@click.argument('document_id')
@click.pass_context
def process(ctx, document_id):
  """Chunk a single stored document"""
  pipeline = build_pipeline(ctx.obj["config"], with_embeddings=False)
  result = pipeline.executors.process(document_id)
  echo_json(result.to_dict())
  sys.exit(0 if result.success else 1)


@cli.command()
@click.argument('document_id')
@click.pass_context
def embed(ctx, document_id):
  """Embed the chunks of a single processed document"""
  pipeline = build_pipeline(ctx.obj["config"])
  result = pipeline.executors.embed(document_id)
  echo_json(result.to_dict())
  sys.exit(0 if result.success else 1)


@cli.command()
@click.argument('document_id')
@click.option('--refetch', is_flag=True, help='Download the url again and replace the stored content')
@click.pass_context
def retry(ctx, document_id, refetch):
  """Put a document that failed terminally back in its queue"""
  pipeline = build_pipeline(ctx.obj["config"], with_embeddings=False)
  result = pipeline.executors.retry(document_id, refetch=refetch)
  echo_json(result.to_dict())
  sys.exit(0 if result.success else 1)


@cli.command('run-batch')
@click.argument('stage', type=click.Choice(['process', 'embed']))
@click.option('--batch-size', default=None, type=int, help='Documents per batch (config default for the stage)')
@click.option('--drain', is_flag=True, help='Repeat until a batch makes no progress')
@click.pass_context
def run_batch(ctx, stage, batch_size, drain):
  """Advance the next pending documents through one stage"""
  pipeline = build_pipeline(ctx.obj["config"], with_embeddings=(stage == 'embed'))
  if drain:
    drained = pipeline.driver.drain(stage, batch_size)
    echo_json({
      "stage": stage,
      "iterations": drained.iterations,
      "attempted": drained.attempted,
      "succeeded": drained.succeeded,
    })
  else:
    echo_json(pipeline.runner.run_batch(stage, batch_size).to_dict())


@cli.command('bulk-scrape')
@click.argument('url_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--source', default='regioni', show_default=True, help='Gazette source name')
@click.option('--max-documents', default=None, type=int, help='Cap per call (config default)')
@click.pass_context
def bulk_scrape(ctx, url_file, source, max_documents):
  """Scrape the next capped slice of a candidate URL list"""
  pipeline = build_pipeline(ctx.obj["config"], with_embeddings=False, show_progress=True)
  result = pipeline.driver.bulk_scrape(read_url_file(url_file), gazette_source(source), max_documents)
  echo_json(result.to_dict())


@cli.command('pipeline')
@click.argument('years_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--source', default='regioni', show_default=True, help='Gazette source name')
@click.pass_context
def run_pipeline(ctx, years_file, source):
  """Scrape, process and embed every year of a YAML year -> URLs file"""
  with open(years_file, 'r', encoding='utf-8') as f:
    urls_by_year = {int(year): list(urls or []) for year, urls in (yaml.safe_load(f) or {}).items()}

  pipeline = build_pipeline(ctx.obj["config"], show_progress=True)
  reports = pipeline.driver.process_multiple_years(urls_by_year, source)

  print("\n" + "="*80)
  print("FINAL REPORT")
  print("="*80)
  for report in reports:
    print(f"{report.year}: scraped {report.scraped}, "
          f"processed {report.processed.succeeded}, embedded {report.embedded.succeeded}, "
          f"remaining {report.remaining}, failed {len(report.failed_urls)}")
  if reports:
    stats = reports[-1].stats
    print(f"\nTotal documents: {stats['total']}")
    print(f"Processed: {stats['processed']} ({stats['completionRate']}%)")
    print(f"Embedded: {stats['embedded']} ({stats['embeddingRate']}%)")


@cli.command()
@click.pass_context
def stats(ctx):
  """Show collection statistics"""
  pipeline = build_pipeline(ctx.obj["config"], with_embeddings=False)
  echo_json(pipeline.store.aggregate_stats())


if __name__ == "__main__":
  cli()
