import os
import pymongo
from datetime import datetime
from typing import Dict, List, Any, Optional
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError, PyMongoError

from urban_rag.database.document_store import (
  DocumentStore, InsertOutcome, check_pending_stage, completion_rates
)
from urban_rag.errors import ErrorKind, StoreError
from urban_rag.models.document import ALLOWED_TRANSITIONS, Chunk, Document, DocumentStage
from urban_rag.utils.logger import get_logger

logger = get_logger("store")

_PROCESSED_STAGES = [DocumentStage.PROCESSED.value, DocumentStage.EMBEDDED.value]


def create_mongo_client(config: Dict[str, Any]) -> pymongo.MongoClient:
  """Build the shared MongoClient; the URI comes from the environment when set"""
  db_config = config['database']
  uri = os.environ.get(db_config.get('mongodb_uri_env', 'MONGODB_URI')) or db_config['mongodb_uri']
  return pymongo.MongoClient(uri)


class MongoDocumentStore(DocumentStore):
  """MongoDB document store for scraped documents and their chunks"""

  def __init__(self, collection):
    """Wrap an existing pymongo collection and make sure indexes exist"""
    self.collection = collection
    self._create_indexes()

  @classmethod
  def from_config(cls, client: pymongo.MongoClient, config: Dict[str, Any]) -> 'MongoDocumentStore':
    db_config = config['database']
    return cls(client[db_config['database_name']][db_config['collection_name']])

  def _create_indexes(self):
    """Create necessary indexes for efficient querying, if needed"""
    specs = [
      ("url", {"unique": True}),
      ("stage", {}),
      ("source", {}),
      ("createdAt", {}),
    ]

    # Convert SON -> dict -> sorted tuple (hashable)
    existing_keys = {
      tuple(sorted(dict(idx["key"]).items()))
      for idx in self.collection.list_indexes()
    }

    created = 0
    for field, options in specs:
      if ((field, 1),) not in existing_keys:
        self.collection.create_index(field, **options)
        created += 1

    if created > 0:
      logger.info(f"✓ created {created} indexes on '{self.collection.name}'")

  @staticmethod
  def _object_id(document_id: str) -> Optional[ObjectId]:
    # ObjectId(None) would generate a fresh id
    if not document_id:
      return None
    try:
      return ObjectId(document_id)
    except (InvalidId, TypeError):
      return None

  def find_by_url(self, url: str) -> Optional[Document]:
    data = self.collection.find_one({"url": url})
    return Document.from_dict(data) if data else None

  def find_by_id(self, document_id: str) -> Optional[Document]:
    oid = self._object_id(document_id)
    if oid is None:
      return None
    data = self.collection.find_one({"_id": oid})
    return Document.from_dict(data) if data else None

  def insert_if_absent(self, document: Document) -> InsertOutcome:
    """Atomic upsert on the unique url index"""
    data = document.to_dict()
    url = data.pop("url")
    try:
      result = self.collection.update_one(
        {"url": url},
        {"$setOnInsert": data},
        upsert=True
      )
      created = result.upserted_id is not None
    except DuplicateKeyError:
      # A concurrent insert for the same url won the race
      logger.info(f"ℹ document already exists (ignored): {url}")
      created = False
    except PyMongoError as e:
      logger.error(f"✗ MongoDB error: {e}")
      raise StoreError(f"Failed to store document {url}: {e}") from e

    stored = self.find_by_url(url)
    if stored is None:
      raise StoreError(f"Document {url} vanished right after insert")
    return InsertOutcome(created=created, document=stored)

  def _transition(self, document_id: str, target: DocumentStage, fields: Dict[str, Any]) -> bool:
    """Conditional update that only applies when the stored stage precedes target"""
    oid = self._object_id(document_id)
    if oid is None:
      return False
    source = next(s for s, t in ALLOWED_TRANSITIONS.items() if t == target)
    try:
      result = self.collection.update_one(
        {"_id": oid, "stage": source.value},
        {"$set": {"stage": target.value, **fields}, "$unset": {"lastError": ""}}
      )
    except PyMongoError as e:
      logger.error(f"✗ MongoDB error: {e}")
      raise StoreError(f"Failed to move document {document_id} to {target.value}: {e}") from e
    return result.modified_count > 0

  def update_chunks(self, document_id: str, chunks: List[Chunk]) -> bool:
    return self._transition(document_id, DocumentStage.PROCESSED, {
      "chunks": [c.to_dict() for c in chunks],
      "processedAt": datetime.now()
    })

  def mark_embedded(self, document_id: str, chunks_embedded: int) -> bool:
    return self._transition(document_id, DocumentStage.EMBEDDED, {
      "chunksEmbedded": chunks_embedded,
      "embeddedAt": datetime.now()
    })

  @staticmethod
  def _pending_filter(stage: str) -> Dict[str, Any]:
    required = check_pending_stage(stage)
    filter_dict = {
      "stage": required.value,
      # $ne also matches documents without lastError
      "lastError.stage": {"$ne": stage},
    }
    if stage == "process":
      filter_dict["content"] = {"$nin": [None, ""]}
    return filter_dict

  def select_pending(self, stage: str, limit: int) -> List[Document]:
    cursor = self.collection.find(self._pending_filter(stage)).sort("_id", pymongo.ASCENDING)
    if limit > 0:
      cursor = cursor.limit(limit)
    return [Document.from_dict(d) for d in cursor]

  def _update(self, oid: ObjectId, filter_extra: Dict[str, Any], update: Dict[str, Any], action: str):
    try:
      return self.collection.update_one({"_id": oid, **filter_extra}, update)
    except PyMongoError as e:
      logger.error(f"✗ MongoDB error: {e}")
      raise StoreError(f"Failed to {action} for document {oid}: {e}") from e

  def record_failure(self, document_id: str, stage: str, kind: ErrorKind, message: str) -> None:
    oid = self._object_id(document_id)
    if oid is None:
      return
    self._update(oid, {}, {"$set": {"lastError": {
      "stage": stage,
      "kind": ErrorKind(kind).value,
      "message": message,
      "at": datetime.now()
    }}}, "record failure")

  def clear_failure(self, document_id: str) -> None:
    oid = self._object_id(document_id)
    if oid is not None:
      self._update(oid, {}, {"$unset": {"lastError": ""}}, "clear failure")

  def replace_content(self, document_id: str, content: str) -> bool:
    """Only scraped documents take new content; chunks would go stale otherwise"""
    oid = self._object_id(document_id)
    if oid is None:
      return False
    result = self._update(
      oid,
      {"stage": DocumentStage.SCRAPED.value},
      {"$set": {"content": content, "contentLength": len(content)}, "$unset": {"lastError": ""}},
      "replace content"
    )
    return result.matched_count > 0

  def aggregate_stats(self) -> Dict[str, Any]:
    """Get collection statistics"""
    total = self.collection.count_documents({})
    processed = self.collection.count_documents({"stage": {"$in": _PROCESSED_STAGES}})
    embedded = self.collection.count_documents({"stage": DocumentStage.EMBEDDED.value})

    per_source = [
      {
        "source": row["_id"],
        "total": row["total"],
        "processed": row["processed"],
        "embedded": row["embedded"],
      }
      for row in self.collection.aggregate([
        {"$group": {
          "_id": "$source",
          "total": {"$sum": 1},
          "processed": {"$sum": {"$cond": [{"$in": ["$stage", _PROCESSED_STAGES]}, 1, 0]}},
          "embedded": {"$sum": {"$cond": [{"$eq": ["$stage", DocumentStage.EMBEDDED.value]}, 1, 0]}},
        }},
        {"$sort": {"total": -1}}
      ])
    ]

    chunk_rows = list(self.collection.aggregate([
      {"$match": {"stage": {"$in": _PROCESSED_STAGES}, "chunks": {"$exists": True}}},
      {"$project": {"chunkCount": {"$size": "$chunks"}}},
      {"$group": {
        "_id": None,
        "totalChunks": {"$sum": "$chunkCount"},
        "avgChunksPerDoc": {"$avg": "$chunkCount"},
        "maxChunksPerDoc": {"$max": "$chunkCount"},
        "minChunksPerDoc": {"$min": "$chunkCount"},
      }}
    ]))
    chunks = {k: v for k, v in chunk_rows[0].items() if k != "_id"} if chunk_rows else {
      "totalChunks": 0, "avgChunksPerDoc": 0, "maxChunksPerDoc": 0, "minChunksPerDoc": 0
    }

    recent = [
      {**{k: v for k, v in d.items() if k != "_id"}, "documentId": str(d["_id"])}
      for d in self.collection.find(
        {},
        {"title": 1, "source": 1, "stage": 1, "createdAt": 1, "contentLength": 1}
      ).sort("createdAt", pymongo.DESCENDING).limit(10)
    ]

    return {
      "total": total,
      "scraped": self.collection.count_documents({"content": {"$nin": [None, ""]}}),
      "processed": processed,
      "embedded": embedded,
      "pendingProcess": self.collection.count_documents(self._pending_filter("process")),
      "pendingEmbed": self.collection.count_documents(self._pending_filter("embed")),
      **completion_rates(total, processed, embedded),
      "perSource": per_source,
      "chunks": chunks,
      "recentActivity": recent,
    }

  def clear_collection(self):
    """Clear all documents (use with caution!)"""
    self.collection.delete_many({})
    logger.info("⚠ all documents deleted from the collection")
