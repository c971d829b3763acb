from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field


class DocumentStage(str, Enum):
  """Lifecycle stage of a document, the single source of truth for its state"""
  DISCOVERED = "discovered"
  SCRAPED = "scraped"
  PROCESSED = "processed"
  EMBEDDED = "embedded"


# Only the immediate next step is a legal transition
ALLOWED_TRANSITIONS = {
  DocumentStage.DISCOVERED: DocumentStage.SCRAPED,
  DocumentStage.SCRAPED: DocumentStage.PROCESSED,
  DocumentStage.PROCESSED: DocumentStage.EMBEDDED,
}

_STAGE_ORDER = [
  DocumentStage.DISCOVERED,
  DocumentStage.SCRAPED,
  DocumentStage.PROCESSED,
  DocumentStage.EMBEDDED,
]


def can_transition(current: DocumentStage, target: DocumentStage) -> bool:
  """True when target is the immediate next stage after current"""
  return ALLOWED_TRANSITIONS.get(DocumentStage(current)) == DocumentStage(target)


def stage_reached(current: DocumentStage, target: DocumentStage) -> bool:
  """True when current is target or any later stage"""
  return _STAGE_ORDER.index(DocumentStage(current)) >= _STAGE_ORDER.index(DocumentStage(target))


class DocumentType(str, Enum):
  PDF = "pdf"
  WEB = "web"
  NORMATTIVA = "normattiva"


@dataclass
class Chunk:
  """Retrieval unit derived from one document"""
  id: str
  index: int
  text: str
  length: int
  title: str = ""

  @classmethod
  def build(cls, index: int, text: str, title: str = "") -> 'Chunk':
    text = text.strip()
    return cls(id=f"chunk_{index}", index=index, text=text, length=len(text), title=title)

  def to_dict(self) -> Dict[str, Any]:
    return {
      "id": self.id,
      "index": self.index,
      "text": self.text,
      "length": self.length,
      "title": self.title
    }

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> 'Chunk':
    return cls(
      id = data['id'],
      index = data['index'],
      text = data['text'],
      length = data.get('length', len(data['text'])),
      title = data.get('title', '')
    )


@dataclass
class Document:
  """Complete document structure, mirrors the stored shape"""
  url: str
  title: str
  content: str
  source: str = "manual"
  document_type: DocumentType = DocumentType.WEB
  stage: DocumentStage = DocumentStage.SCRAPED
  id: Optional[str] = None
  chunks: List[Chunk] = field(default_factory=list)
  chunks_embedded: int = 0
  created_at: Optional[datetime] = None
  processed_at: Optional[datetime] = None
  embedded_at: Optional[datetime] = None
  last_error: Optional[Dict[str, Any]] = None

  @property
  def content_length(self) -> int:
    return len(self.content or "")

  @property
  def processed(self) -> bool:
    return stage_reached(self.stage, DocumentStage.PROCESSED)

  @property
  def embedded(self) -> bool:
    return self.stage == DocumentStage.EMBEDDED

  def to_dict(self) -> Dict[str, Any]:
    """Convert to dictionary for MongoDB (without the _id)"""
    data = {
      "url": self.url,
      "title": self.title,
      "content": self.content,
      "source": self.source,
      "documentType": DocumentType(self.document_type).value,
      "contentLength": self.content_length,
      "stage": DocumentStage(self.stage).value,
      "createdAt": self.created_at or datetime.now(),
    }
    if self.chunks:
      data["chunks"] = [c.to_dict() for c in self.chunks]
    if self.processed_at:
      data["processedAt"] = self.processed_at
    if self.embedded_at:
      data["embeddedAt"] = self.embedded_at
      data["chunksEmbedded"] = self.chunks_embedded
    if self.last_error:
      data["lastError"] = self.last_error
    return data

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> 'Document':
    """Create Document from MongoDB document"""
    doc_id = data.get('_id', data.get('id'))
    return cls(
      id = str(doc_id) if doc_id is not None else None,
      url = data['url'],
      title = data.get('title', ''),
      content = data.get('content', ''),
      source = data.get('source', 'manual'),
      document_type = DocumentType(data.get('documentType', DocumentType.WEB.value)),
      stage = DocumentStage(data.get('stage', DocumentStage.SCRAPED.value)),
      chunks = [Chunk.from_dict(c) for c in data.get('chunks') or []],
      chunks_embedded = data.get('chunksEmbedded', 0),
      created_at = data.get('createdAt'),
      processed_at = data.get('processedAt'),
      embedded_at = data.get('embeddedAt'),
      last_error = data.get('lastError')
    )

  def summary(self) -> Dict[str, Any]:
    """Short projection used in CLI output and result payloads"""
    return {
      "documentId": self.id,
      "url": self.url,
      "title": self.title,
      "documentType": DocumentType(self.document_type).value,
      "contentLength": self.content_length,
      "stage": DocumentStage(self.stage).value,
    }
