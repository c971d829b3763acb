"""Shared fixtures: in-memory stand-ins for MongoDB, HTTP, the embedding provider and the vector index."""

import hashlib
import itertools
import threading
from datetime import datetime

import pytest

from urban_rag.database.document_store import (
  DocumentStore, InsertOutcome, check_pending_stage, completion_rates
)
from urban_rag.errors import EmbeddingError, ErrorKind, ExtractionError
from urban_rag.extraction.extractor import ExtractedContent, detect_document_type
from urban_rag.embeddings.embedder import Embedder
from urban_rag.models.document import ALLOWED_TRANSITIONS, Document, DocumentStage
from urban_rag.pipeline.batch_runner import BatchRunner
from urban_rag.pipeline.driver import PipelineDriver
from urban_rag.pipeline.settings import PipelineSettings
from urban_rag.pipeline.stages import StageExecutors
from urban_rag.processing.chunker import Chunker
from urban_rag.vectorstore.vector_index import VectorIndex, VectorMatch, cosine_similarity


SENTENCE = "The regional council approved the new urban zoning plan today."


def make_text(n_sentences: int, sentence: str = SENTENCE) -> str:
  return " ".join([sentence] * n_sentences)


class InMemoryDocumentStore(DocumentStore):
  """Dict-backed store with the same conditional-update semantics as the Mongo one"""

  def __init__(self):
    self._docs = {}
    self._lock = threading.RLock()
    self._ids = itertools.count(1)
    self.insert_calls = 0

  def _load(self, data):
    return Document.from_dict(dict(data)) if data else None

  def find_by_url(self, url):
    with self._lock:
      for data in self._docs.values():
        if data["url"] == url:
          return self._load(data)
    return None

  def find_by_id(self, document_id):
    return self._load(self._docs.get(document_id))

  def insert_if_absent(self, document):
    with self._lock:
      self.insert_calls += 1
      existing = self.find_by_url(document.url)
      if existing:
        return InsertOutcome(created=False, document=existing)
      doc_id = f"{next(self._ids):024x}"
      data = document.to_dict()
      data["_id"] = doc_id
      self._docs[doc_id] = data
      return InsertOutcome(created=True, document=self._load(data))

  def _transition(self, document_id, target, fields):
    source = next(s for s, t in ALLOWED_TRANSITIONS.items() if t == target)
    with self._lock:
      data = self._docs.get(document_id)
      if data is None or data["stage"] != source.value:
        return False
      data.update(fields)
      data["stage"] = target.value
      data.pop("lastError", None)
      return True

  def update_chunks(self, document_id, chunks):
    return self._transition(document_id, DocumentStage.PROCESSED, {
      "chunks": [c.to_dict() for c in chunks],
      "processedAt": datetime.now(),
    })

  def mark_embedded(self, document_id, chunks_embedded):
    return self._transition(document_id, DocumentStage.EMBEDDED, {
      "chunksEmbedded": chunks_embedded,
      "embeddedAt": datetime.now(),
    })

  def _pending(self, stage):
    required = check_pending_stage(stage)
    for data in self._docs.values():
      if data["stage"] != required.value:
        continue
      if (data.get("lastError") or {}).get("stage") == stage:
        continue
      if stage == "process" and not data.get("content"):
        continue
      yield data

  def select_pending(self, stage, limit):
    selected = list(self._pending(stage))
    if limit > 0:
      selected = selected[:limit]
    return [self._load(d) for d in selected]

  def record_failure(self, document_id, stage, kind, message):
    if document_id in self._docs:
      self._docs[document_id]["lastError"] = {
        "stage": stage, "kind": ErrorKind(kind).value, "message": message, "at": datetime.now()
      }

  def clear_failure(self, document_id):
    if document_id in self._docs:
      self._docs[document_id].pop("lastError", None)

  def replace_content(self, document_id, content):
    with self._lock:
      data = self._docs.get(document_id)
      if data is None or data["stage"] != DocumentStage.SCRAPED.value:
        return False
      data["content"] = content
      data["contentLength"] = len(content)
      data.pop("lastError", None)
      return True

  def aggregate_stats(self):
    docs = list(self._docs.values())
    processed = sum(1 for d in docs if d["stage"] in ("processed", "embedded"))
    embedded = sum(1 for d in docs if d["stage"] == "embedded")
    per_source = {}
    for d in docs:
      row = per_source.setdefault(d["source"], {"source": d["source"], "total": 0, "processed": 0, "embedded": 0})
      row["total"] += 1
      row["processed"] += d["stage"] in ("processed", "embedded")
      row["embedded"] += d["stage"] == "embedded"
    return {
      "total": len(docs),
      "scraped": sum(1 for d in docs if d.get("content")),
      "processed": processed,
      "embedded": embedded,
      "pendingProcess": len(list(self._pending("process"))),
      "pendingEmbed": len(list(self._pending("embed"))),
      **completion_rates(len(docs), processed, embedded),
      "perSource": sorted(per_source.values(), key=lambda r: -r["total"]),
    }

  # test helpers

  def add(self, url, content, title="Doc", source="manual", stage=DocumentStage.SCRAPED):
    document = Document(url=url, title=title, content=content, source=source, stage=stage)
    return self.insert_if_absent(document).document

  def raw(self, document_id):
    return self._docs[document_id]


class FakeExtractor:
  """Serves canned pages; an Exception value is raised instead"""

  def __init__(self, pages=None):
    self.pages = dict(pages or {})
    self.calls = []

  def fetch(self, url):
    self.calls.append(url)
    page = self.pages.get(url)
    if page is None:
      raise ExtractionError(f"Failed to fetch {url}: 404 Client Error")
    if isinstance(page, Exception):
      raise page
    if isinstance(page, ExtractedContent):
      return page
    return ExtractedContent(title=f"Title of {url}", content=page, document_type=detect_document_type(url))


class FakeEmbedder(Embedder):
  """Deterministic hash vectors; texts containing a poison word fail"""

  dimension = 8

  def __init__(self, poison=None, fail_first=0):
    self.poison = poison
    self.fail_first = fail_first
    self.calls = 0

  def embed_text(self, text):
    self.calls += 1
    if self.fail_first > 0:
      self.fail_first -= 1
      raise EmbeddingError("429 Too Many Requests")
    if self.poison and self.poison in text:
      raise EmbeddingError("provider rejected input")
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 for b in digest[:self.dimension]]


class FakeVectorIndex(VectorIndex):
  def __init__(self, fail_upserts=0):
    self.records = {}
    self.upsert_calls = 0
    self.fail_upserts = fail_upserts

  def upsert(self, records):
    self.upsert_calls += 1
    if self.fail_upserts > 0:
      self.fail_upserts -= 1
      raise EmbeddingError("index unavailable")
    for r in records:
      self.records[r.id] = r
    return len(records)

  def query(self, vector, top_k=5, score_threshold=0.0, filter_dict=None):
    scored = [
      VectorMatch(id=r.id, score=cosine_similarity(vector, r.values), metadata=r.metadata)
      for r in self.records.values()
    ]
    scored.sort(key=lambda m: m.score, reverse=True)
    return [m for m in scored if m.score >= score_threshold][:top_k]

  def delete_document(self, document_id):
    doomed = [k for k, r in self.records.items() if r.metadata.get("documentId") == document_id]
    for k in doomed:
      del self.records[k]
    return len(doomed)


class SleepRecorder:
  def __init__(self):
    self.calls = []

  def __call__(self, seconds):
    self.calls.append(seconds)


@pytest.fixture
def store():
  return InMemoryDocumentStore()


@pytest.fixture
def extractor():
  return FakeExtractor()


@pytest.fixture
def embedder():
  return FakeEmbedder()


@pytest.fixture
def index():
  return FakeVectorIndex()


@pytest.fixture
def sleeps():
  return SleepRecorder()


@pytest.fixture
def settings():
  return PipelineSettings.without_delays(retry_attempts=2)


@pytest.fixture
def executors(store, extractor, embedder, index, settings, sleeps):
  return StageExecutors(store, extractor, embedder, index, Chunker(), settings, sleep=sleeps)


@pytest.fixture
def runner(store, executors, settings, sleeps):
  return BatchRunner(store, executors, settings, sleep=sleeps)


@pytest.fixture
def driver(store, executors, runner, settings, sleeps):
  return PipelineDriver(store, executors, runner, settings, sleep=sleeps)
