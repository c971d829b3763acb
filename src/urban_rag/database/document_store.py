from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from urban_rag.errors import ErrorKind
from urban_rag.models.document import Chunk, Document, DocumentStage

# Batch stage name -> stage a document must be in to be picked up
PENDING_STAGES = {
  "process": DocumentStage.SCRAPED,
  "embed": DocumentStage.PROCESSED,
}


@dataclass
class InsertOutcome:
  """Result of insert_if_absent: the stored document and whether this call created it"""
  created: bool
  document: Document


class DocumentStore(ABC):
  """
  Persistent document collection keyed by url (dedup) and by id (retrieval).

  insert_if_absent is the only operation that needs atomicity; every other
  mutation is a conditional single-document update that is safe to repeat.
  """

  @abstractmethod
  def find_by_url(self, url: str) -> Optional[Document]:
    pass

  @abstractmethod
  def find_by_id(self, document_id: str) -> Optional[Document]:
    pass

  @abstractmethod
  def insert_if_absent(self, document: Document) -> InsertOutcome:
    """Insert unless a document with the same url exists"""
    pass

  @abstractmethod
  def update_chunks(self, document_id: str, chunks: List[Chunk]) -> bool:
    """Store chunks and move scraped -> processed; False when nothing changed"""
    pass

  @abstractmethod
  def mark_embedded(self, document_id: str, chunks_embedded: int) -> bool:
    """Move processed -> embedded; False when nothing changed"""
    pass

  @abstractmethod
  def select_pending(self, stage: str, limit: int) -> List[Document]:
    """Documents eligible for the given batch stage, in insertion order"""
    pass

  @abstractmethod
  def record_failure(self, document_id: str, stage: str, kind: ErrorKind, message: str) -> None:
    """Remember a terminal failure; the document's stage is left untouched"""
    pass

  @abstractmethod
  def clear_failure(self, document_id: str) -> None:
    """Drop the failure marker so the document is selected again"""
    pass

  @abstractmethod
  def replace_content(self, document_id: str, content: str) -> bool:
    """Swap the content of a scraped document and drop its failure marker"""
    pass

  @abstractmethod
  def aggregate_stats(self) -> Dict[str, Any]:
    pass

  def queue_status(self) -> Dict[str, int]:
    """Pending counts per batch stage"""
    stats = self.aggregate_stats()
    return {
      "pendingProcess": stats["pendingProcess"],
      "pendingEmbed": stats["pendingEmbed"],
    }


def check_pending_stage(stage: str) -> DocumentStage:
  if stage not in PENDING_STAGES:
    raise ValueError(f"Unknown batch stage: {stage!r} (use one of {sorted(PENDING_STAGES)})")
  return PENDING_STAGES[stage]


def completion_rates(total: int, processed: int, embedded: int) -> Dict[str, int]:
  """Percentages reported next to the raw counts"""
  return {
    "completionRate": round(processed / total * 100) if total > 0 else 0,
    "embeddingRate": round(embedded / processed * 100) if processed > 0 else 0,
  }
