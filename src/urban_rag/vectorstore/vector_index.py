import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from pymongo import ReplaceOne
from pymongo.errors import PyMongoError

from urban_rag.errors import EmbeddingError
from urban_rag.utils.logger import get_logger

logger = get_logger("vectorstore")


@dataclass
class VectorRecord:
  """One chunk vector, keyed '<documentId>_<chunkId>'"""
  id: str
  values: List[float]
  metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
  id: str
  score: float
  metadata: Dict[str, Any] = field(default_factory=dict)


def cosine_similarity(embedding1: Union[List[float], np.ndarray],
                      embedding2: Union[List[float], np.ndarray]) -> float:
  """Calculate cosine similarity between two embeddings"""
  a = np.asarray(embedding1, dtype=float)
  b = np.asarray(embedding2, dtype=float)
  norm = np.linalg.norm(a) * np.linalg.norm(b)
  if norm == 0:
    return 0.0
  return float(np.dot(a, b) / norm)


class VectorIndex(ABC):
  """Vector index holding chunk embeddings"""

  @abstractmethod
  def upsert(self, records: List[VectorRecord]) -> int:
    """Insert or replace records by id, returns the number written"""
    pass

  @abstractmethod
  def query(
      self,
      vector: List[float],
      top_k: int = 5,
      score_threshold: float = 0.0,
      filter_dict: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
    """Best matches first, only those scoring at least score_threshold"""
    pass

  @abstractmethod
  def delete_document(self, document_id: str) -> int:
    pass


class MongoVectorIndex(VectorIndex):
  """Vectors stored in a MongoDB collection, ranked in memory with numpy"""

  def __init__(self, collection):
    self.collection = collection

  @classmethod
  def from_config(cls, client, config: Dict[str, Any]) -> 'MongoVectorIndex':
    db_config = config['database']
    collection_name = db_config.get('vectors_collection_name', 'vectors')
    index = cls(client[db_config['database_name']][collection_name])
    index.collection.create_index("metadata.documentId")
    return index

  def upsert(self, records: List[VectorRecord]) -> int:
    if not records:
      return 0
    operations = [
      ReplaceOne(
        {"_id": r.id},
        {"_id": r.id, "values": list(r.values), "metadata": r.metadata},
        upsert=True
      )
      for r in records
    ]
    try:
      self.collection.bulk_write(operations, ordered=False)
    except PyMongoError as e:
      raise EmbeddingError(f"Vector upsert failed: {e}") from e
    return len(records)

  def query(
      self,
      vector: List[float],
      top_k: int = 5,
      score_threshold: float = 0.0,
      filter_dict: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
    mongo_filter = {f"metadata.{k}": v for k, v in (filter_dict or {}).items()}
    candidates = list(self.collection.find(mongo_filter))
    if not candidates:
      return []

    matrix = np.asarray([c["values"] for c in candidates], dtype=float)
    query_vector = np.asarray(vector, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
    norms[norms == 0] = np.inf
    scores = matrix @ query_vector / norms

    # Sort by score descending
    order = np.argsort(-scores)
    matches = []
    for i in order:
      score = float(scores[i])
      if score < score_threshold or len(matches) >= top_k:
        break
      matches.append(VectorMatch(id=candidates[i]["_id"], score=score, metadata=candidates[i].get("metadata", {})))
    return matches

  def delete_document(self, document_id: str) -> int:
    result = self.collection.delete_many({"metadata.documentId": document_id})
    return result.deleted_count

  def count(self) -> int:
    return self.collection.count_documents({})
