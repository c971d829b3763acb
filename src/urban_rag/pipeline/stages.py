"""
Stage executors: scrape, process (chunk) and embed one document.

Every executor is idempotent. Repeating a call on a document that already
reached the stage returns success with already_done=True and the stored
result, which is what makes overlapping batch runs safe without locks.
Adapter exceptions never escape: they come back as Result.fail.
"""

import functools
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from tenacity import Retrying, before_sleep_log, stop_after_attempt, wait_exponential

from urban_rag.database.document_store import DocumentStore
from urban_rag.embeddings.embedder import Embedder
from urban_rag.errors import ConfigError, ErrorKind, PipelineError, StoreError
from urban_rag.extraction.extractor import ContentExtractor
from urban_rag.models.document import Chunk, Document, DocumentStage, DocumentType
from urban_rag.pipeline.result import Result
from urban_rag.pipeline.settings import PipelineSettings
from urban_rag.processing.chunker import Chunker, normalize_content
from urban_rag.utils.logger import get_logger
from urban_rag.vectorstore.vector_index import VectorIndex, VectorRecord

logger = get_logger("stages")


def result_boundary(failure_message: str):
  """Turn exceptions raised by an executor into Result.fail envelopes"""
  def decorator(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
      try:
        return method(self, *args, **kwargs)
      except PipelineError as e:
        logger.error(f"✗ {failure_message}: {e.message}")
        return Result.fail(e.kind, f"{failure_message}: {e.message}")
      except Exception as e:
        logger.error(f"✗ {failure_message}: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
        return Result.fail(ErrorKind.EXTERNAL_CALL_FAILURE, f"{failure_message}: {e}")
    return wrapper
  return decorator


def vector_id(document_id: str, chunk_id: str) -> str:
  """Stable vector key, so re-embedding overwrites instead of duplicating"""
  return f"{document_id}_{chunk_id}"


class StageExecutors:
  """Scrape, process and embed single documents against injected collaborators"""

  def __init__(
      self,
      store: DocumentStore,
      extractor: ContentExtractor,
      embedder: Optional[Embedder],
      index: Optional[VectorIndex],
      chunker: Optional[Chunker] = None,
      settings: Optional[PipelineSettings] = None,
      sleep: Callable[[float], None] = time.sleep):
    self.store = store
    self.extractor = extractor
    self.embedder = embedder
    self.index = index
    self.chunker = chunker or Chunker()
    self.settings = settings or PipelineSettings()
    self.sleep = sleep

  # ---------------------------------------------------------------- scrape

  @result_boundary("Failed to scrape document")
  def scrape(self, url: str, source: str = "manual", min_content_length: Optional[int] = None) -> Result[Document]:
    """
    Fetch url, extract its text and store it once.

    An url that is already stored is returned as is, without fetching it again.
    """
    url = (url or "").strip()
    if not url:
      return Result.fail(ErrorKind.VALIDATION_ERROR, "URL is required")
    if min_content_length is None:
      min_content_length = self.settings.scrape_min_content_length

    existing = self.store.find_by_url(url)
    if existing:
      return Result.ok(existing, "Document already exists", already_done=True)

    extracted = self.extractor.fetch(url)
    content = normalize_content(extracted.content)
    if len(content) < min_content_length:
      logger.warning(f"⚠ content too short ({len(content)} characters): {url}")
      return Result.fail(
        ErrorKind.CONTENT_TOO_SHORT,
        f"Document content too short or extraction failed ({len(content)} < {min_content_length} characters)"
      )

    document = Document(
      url = url,
      title = extracted.title,
      content = content,
      source = source,
      document_type = extracted.document_type,
      stage = DocumentStage.SCRAPED,
      created_at = datetime.now()
    )
    outcome = self.store.insert_if_absent(document)
    if not outcome.created:
      return Result.ok(outcome.document, "Document already exists", already_done=True)

    logger.info(f"✓ document stored with ID {outcome.document.id} ({document.content_length} characters)")
    return Result.ok(outcome.document, "Document scraped and stored successfully")

  # --------------------------------------------------------------- process

  def _load(self, document_id: str) -> Optional[Document]:
    return self.store.find_by_id(document_id)

  @result_boundary("Failed to process document")
  def process(self, document_id: str) -> Result[Dict[str, Any]]:
    """Chunk a scraped document and store its chunks"""
    document_id = (document_id or "").strip()
    if not document_id:
      return Result.fail(ErrorKind.VALIDATION_ERROR, "Document ID is required")

    document = self._load(document_id)
    if document is None:
      return Result.fail(ErrorKind.NOT_FOUND, f"Document not found: {document_id}")

    if document.processed:
      return Result.ok(
        {"documentId": document_id, "chunks": len(document.chunks)},
        "Document already processed",
        already_done=True
      )

    logger.info(f"Processing document: {document.title}")
    chunks = self.chunker.chunk(document.content, document.title)
    if not chunks:
      message = f"No chunks could be created from document content ({document.content_length} characters)"
      try:
        self.store.record_failure(document_id, "process", ErrorKind.NO_CHUNKS_PRODUCED, message)
      except StoreError as e:
        logger.warning(f"⚠ failure marker not stored for {document_id}: {e.message}")
      return Result.fail(ErrorKind.NO_CHUNKS_PRODUCED, message)

    if not self.store.update_chunks(document_id, chunks):
      # Someone else advanced the document in the meantime
      current = self._load(document_id)
      if current is not None and current.processed:
        return Result.ok(
          {"documentId": document_id, "chunks": len(current.chunks)},
          "Document already processed",
          already_done=True
        )
      raise StoreError(f"Chunks of document {document_id} were not stored")

    logger.info(f"✓ document processed: {len(chunks)} chunks created")
    return Result.ok(
      {"documentId": document_id, "chunks": len(chunks)},
      f"Document processed successfully into {len(chunks)} chunks"
    )

  @result_boundary("Failed to reset document")
  def retry(self, document_id: str, refetch: bool = False) -> Result[Document]:
    """
    Make a document that failed terminally eligible for its queue again.

    With refetch the stored url is downloaded again and, for a scraped
    document, its content replaced; otherwise only the failure marker is
    dropped (for content fixed by other means).
    """
    document_id = (document_id or "").strip()
    if not document_id:
      return Result.fail(ErrorKind.VALIDATION_ERROR, "Document ID is required")

    document = self._load(document_id)
    if document is None:
      return Result.fail(ErrorKind.NOT_FOUND, f"Document not found: {document_id}")

    if refetch and document.stage == DocumentStage.SCRAPED:
      content = normalize_content(self.extractor.fetch(document.url).content)
      if len(content) < self.settings.scrape_min_content_length:
        return Result.fail(
          ErrorKind.CONTENT_TOO_SHORT,
          f"Document content still too short ({len(content)} < {self.settings.scrape_min_content_length} characters)"
        )
      if not self.store.replace_content(document_id, content):
        # Processed in the meantime, the new content is not needed
        current = self._load(document_id)
        return Result.ok(current, "Document already processed", already_done=True)
    elif document.last_error:
      self.store.clear_failure(document_id)
    else:
      return Result.ok(document, "Document has no recorded failure", already_done=True)

    logger.info(f"✓ document {document_id} queued again")
    return Result.ok(self._load(document_id), "Document queued again")

  # ----------------------------------------------------------------- embed

  def _retrying(self) -> Retrying:
    return Retrying(
      stop = stop_after_attempt(max(self.settings.retry_attempts, 1)),
      wait = wait_exponential(multiplier=self.settings.backoff_multiplier, max=self.settings.backoff_max),
      sleep = self.sleep,
      before_sleep = before_sleep_log(logger, logging.WARNING),
      reraise = True
    )

  def _embed_chunk(self, text: str) -> List[float]:
    """Embedding with exponential backoff on provider errors"""
    return self._retrying()(self.embedder.embed_text, text)

  def _vector_record(self, document: Document, chunk: Chunk, values: List[float]) -> VectorRecord:
    return VectorRecord(
      id = vector_id(document.id, chunk.id),
      values = values,
      metadata = {
        "documentId": document.id,
        "chunkId": chunk.id,
        "chunkIndex": chunk.index,
        "title": document.title,
        "source": document.source,
        "documentType": DocumentType(document.document_type).value,
        "url": document.url,
        "text": chunk.text[:self.settings.embed_text_max_length],
        "createdAt": datetime.now().isoformat()
      }
    )

  @staticmethod
  def _embed_payload(document: Document, embedded: int) -> Dict[str, Any]:
    return {"documentId": document.id, "chunksEmbedded": embedded, "totalChunks": len(document.chunks)}

  @result_boundary("Failed to embed document")
  def embed(self, document_id: str) -> Result[Dict[str, Any]]:
    """
    Embed every chunk of a processed document and upsert the vectors.

    Chunks go out in batches of embed_batch_size with fixed delays between
    items and between batches. A chunk whose embedding or upload fails is
    skipped; the document is marked embedded with the count achieved.
    """
    document_id = (document_id or "").strip()
    if not document_id:
      return Result.fail(ErrorKind.VALIDATION_ERROR, "Document ID is required")

    document = self._load(document_id)
    if document is None:
      return Result.fail(ErrorKind.NOT_FOUND, f"Document not found: {document_id}")

    if document.embedded:
      return Result.ok(
        self._embed_payload(document, document.chunks_embedded),
        "Document already embedded",
        already_done=True
      )

    if not document.processed or not document.chunks:
      return Result.fail(ErrorKind.NOT_PROCESSED, "Document must be processed before embedding")

    if self.embedder is None or self.index is None:
      raise ConfigError("Embedding requires an embedder and a vector index")

    logger.info(f"Generating embeddings for document: {document.title}")
    chunks = document.chunks
    batch_size = max(self.settings.embed_batch_size, 1)
    total_batches = (len(chunks) + batch_size - 1) // batch_size
    embedded_count = 0

    for batch_number, start in enumerate(range(0, len(chunks), batch_size), 1):
      batch = chunks[start:start + batch_size]
      logger.info(f"Embedding batch {batch_number}/{total_batches}")

      records = []
      for chunk in batch:
        try:
          records.append(self._vector_record(document, chunk, self._embed_chunk(chunk.text)))
        except Exception as e:
          logger.error(f"✗ error embedding chunk {chunk.id}: {e}")
        finally:
          # Failed calls are often rate limits, they need the pause too
          self.sleep(self.settings.embed_item_delay)

      if records:
        try:
          self.index.upsert(records)
          embedded_count += len(records)
          logger.info(f"✓ uploaded {len(records)} vectors")
        except Exception as e:
          logger.error(f"✗ error uploading vectors of batch {batch_number}: {e}")

      if batch_number < total_batches:
        self.sleep(self.settings.embed_batch_delay)

    if not self.store.mark_embedded(document_id, embedded_count):
      current = self._load(document_id)
      if current is not None and current.embedded:
        return Result.ok(
          self._embed_payload(current, current.chunks_embedded),
          "Document already embedded",
          already_done=True
        )
      raise StoreError(f"Document {document_id} could not be marked as embedded")

    if embedded_count < len(chunks):
      logger.warning(f"⚠ partial embedding: {embedded_count}/{len(chunks)} chunks")
    logger.info(f"✓ document embedded: {embedded_count} chunks")
    return Result.ok(
      self._embed_payload(document, embedded_count),
      f"Document embedded successfully: {embedded_count}/{len(chunks)} chunks"
    )
