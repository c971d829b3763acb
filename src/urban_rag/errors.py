from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
  """Error taxonomy shared by every pipeline operation"""
  VALIDATION_ERROR = "validation_error"
  NOT_FOUND = "not_found"
  CONTENT_TOO_SHORT = "content_too_short"
  NO_CHUNKS_PRODUCED = "no_chunks_produced"
  NOT_PROCESSED = "not_processed"
  EXTERNAL_CALL_FAILURE = "external_call_failure"


# Retrying these without changing the document's content can only fail again
TERMINAL_ERRORS = frozenset({ErrorKind.CONTENT_TOO_SHORT, ErrorKind.NO_CHUNKS_PRODUCED})


class PipelineError(Exception):
  """Base class for errors raised by pipeline adapters"""

  kind = ErrorKind.EXTERNAL_CALL_FAILURE

  def __init__(self, message: str, kind: Optional[ErrorKind] = None):
    super().__init__(message)
    self.message = message
    if kind is not None:
      self.kind = kind


class ExtractionError(PipelineError):
  """Fetching or reading a remote document failed"""


class StoreError(PipelineError):
  """Document store I/O failed"""


class EmbeddingError(PipelineError):
  """Embedding provider or vector index call failed"""


class ConfigError(PipelineError):
  """Missing or invalid configuration"""

  kind = ErrorKind.VALIDATION_ERROR
