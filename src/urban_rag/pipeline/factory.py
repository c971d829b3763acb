from dataclasses import dataclass
from typing import Any, Dict, Optional

from urban_rag.database.mongodb_client import MongoDocumentStore, create_mongo_client
from urban_rag.embeddings.embedder import Embedder, create_embedder
from urban_rag.extraction.extractor import ContentExtractor
from urban_rag.pipeline.batch_runner import BatchRunner
from urban_rag.pipeline.driver import PipelineDriver
from urban_rag.pipeline.settings import PipelineSettings
from urban_rag.pipeline.stages import StageExecutors
from urban_rag.processing.chunker import Chunker
from urban_rag.vectorstore.vector_index import MongoVectorIndex


@dataclass
class Pipeline:
  """Clients built once at process start and shared by every component"""
  store: MongoDocumentStore
  index: MongoVectorIndex
  embedder: Optional[Embedder]
  executors: StageExecutors
  runner: BatchRunner
  driver: PipelineDriver


def build_pipeline(config: Dict[str, Any], with_embeddings: bool = True, show_progress: bool = False) -> Pipeline:
  """
  Wire store, extractor, embedder and index from config.

  with_embeddings=False skips loading the embedding provider for commands
  that only scrape or chunk.
  """
  client = create_mongo_client(config)
  store = MongoDocumentStore.from_config(client, config)
  index = MongoVectorIndex.from_config(client, config)
  embedder = create_embedder(config) if with_embeddings else None
  settings = PipelineSettings.from_config(config)

  executors = StageExecutors(
    store = store,
    extractor = ContentExtractor.from_config(config),
    embedder = embedder,
    index = index,
    chunker = Chunker.from_config(config),
    settings = settings
  )
  runner = BatchRunner(store, executors, settings)
  driver = PipelineDriver(store, executors, runner, settings, show_progress=show_progress)
  return Pipeline(store, index, embedder, executors, runner, driver)
