"""Tagged results returned by every pipeline operation"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from urban_rag.errors import ErrorKind, TERMINAL_ERRORS

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
  """
  Outcome of one operation: either a value or an ErrorKind, never both.

  already_done marks an idempotent no-op (the document was already in or
  past the requested stage) so callers can tell it apart from fresh work.
  """
  success: bool
  value: Optional[T] = None
  error: Optional[ErrorKind] = None
  message: str = ""
  already_done: bool = False

  @classmethod
  def ok(cls, value: T = None, message: str = "", already_done: bool = False) -> 'Result[T]':
    return cls(success=True, value=value, message=message, already_done=already_done)

  @classmethod
  def fail(cls, kind: ErrorKind, message: str) -> 'Result[T]':
    return cls(success=False, error=kind, message=message)

  @property
  def is_terminal(self) -> bool:
    """Failure that a plain retry cannot fix"""
    return self.error in TERMINAL_ERRORS

  def to_dict(self) -> Dict[str, Any]:
    """Uniform envelope: {success, error, message, alreadyDone, **payload}"""
    envelope = {
      "success": self.success,
      "error": self.error.value if self.error else None,
      "message": self.message,
      "alreadyDone": self.already_done,
    }
    payload = self.value
    if hasattr(payload, 'summary'):
      payload = payload.summary()
    if isinstance(payload, dict):
      envelope.update(payload)
    elif payload is not None:
      envelope["value"] = payload
    return envelope


@dataclass
class ItemResult:
  """Per-document outcome inside a batch"""
  document_id: str
  title: str
  success: bool
  error: Optional[str] = None
  message: str = ""

  def to_dict(self) -> Dict[str, Any]:
    return {
      "documentId": self.document_id,
      "title": self.title,
      "success": self.success,
      "error": self.error,
      "message": self.message,
    }


@dataclass
class BatchRunResult:
  """Aggregate of one batch runner invocation, never persisted"""
  stage: str
  attempted: int = 0
  succeeded: int = 0
  per_item_results: List[ItemResult] = field(default_factory=list)

  @property
  def failed(self) -> int:
    return self.attempted - self.succeeded

  def add(self, item: ItemResult) -> None:
    self.per_item_results.append(item)
    self.attempted += 1
    if item.success:
      self.succeeded += 1

  def to_dict(self) -> Dict[str, Any]:
    return {
      "stage": self.stage,
      "attempted": self.attempted,
      "succeeded": self.succeeded,
      "failed": self.failed,
      "perItemResults": [r.to_dict() for r in self.per_item_results],
      "message": f"{self.stage}: {self.succeeded}/{self.attempted} documents",
    }
