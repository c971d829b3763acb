from dataclasses import dataclass, fields
from typing import Any, Dict


@dataclass
class PipelineSettings:
  """Sizes, floors and fixed delays (seconds) of the 'pipeline' config section"""
  scrape_min_content_length: int = 100
  bulk_min_content_length: int = 50
  embed_batch_size: int = 10
  embed_text_max_length: int = 1000
  embed_item_delay: float = 0.1
  embed_batch_delay: float = 0.5
  process_item_delay: float = 0.2
  embed_queue_item_delay: float = 1.0
  scrape_item_delay: float = 1.0
  bulk_max_documents: int = 10
  process_batch_size: int = 5
  embed_queue_batch_size: int = 3
  max_iterations: int = 20
  iteration_delay: float = 2.0
  process_drain_delay: float = 1.0
  embed_drain_delay: float = 2.0
  year_delay: float = 30.0
  retry_attempts: int = 3
  backoff_multiplier: float = 1.0
  backoff_max: float = 10.0

  @classmethod
  def from_config(cls, config: Dict[str, Any]) -> 'PipelineSettings':
    """Known keys only, missing keys keep their defaults"""
    section = config.get('pipeline', {}) or {}
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in section.items() if k in known})

  @classmethod
  def without_delays(cls, **overrides) -> 'PipelineSettings':
    """Same sizes, every sleep and backoff set to zero"""
    values = {
      f.name: 0 for f in fields(cls)
      if f.name.endswith('_delay') or f.name.startswith('backoff_')
    }
    values.update(overrides)
    return cls(**values)
