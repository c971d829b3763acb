import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

from urban_rag.errors import ConfigError, EmbeddingError
from urban_rag.utils.logger import get_logger

logger = get_logger("embeddings")


class Embedder(ABC):
  """Turns text into vectors"""

  dimension: int

  @abstractmethod
  def embed_text(self, text: str) -> List[float]:
    """Generate embedding for a single text"""
    pass


class SentenceTransformerEmbedder(Embedder):
  """Local sentence-transformers model"""

  def __init__(self, model_name: str):
    from sentence_transformers import SentenceTransformer

    self.model_name = model_name

    logger.info(f"Loading embedding model: {self.model_name}")

    # Try to load from cache first
    model_path = self._get_cached_model_path(self.model_name)

    try:
      self.model = SentenceTransformer(model_path, device='cpu')
      logger.info("✓ embedding model loaded from cache")
    except Exception:
      logger.info("  cache not found, downloading the model...")
      # If not in cache, download (requires internet)
      self.model = SentenceTransformer(self.model_name, device='cpu')
      logger.info("✓ embedding model downloaded and loaded")

    self.dimension = self.model.get_sentence_embedding_dimension()

  @staticmethod
  def _get_cached_model_path(model_name: str) -> str:
    """Get the path to cached model, or return model_name if not cached"""
    cache_dir = os.environ.get('HF_HOME',
                   os.path.join(Path.home(), '.cache', 'huggingface'))

    model_cache_name = f"models--{model_name.replace('/', '--')}"
    snapshots_dir = os.path.join(cache_dir, 'hub', model_cache_name, 'snapshots')

    if os.path.isdir(snapshots_dir):
      snapshots = sorted(os.listdir(snapshots_dir))
      if snapshots:
        return os.path.join(snapshots_dir, snapshots[0])

    # Not in cache - will require download
    return model_name

  def embed_text(self, text: str) -> List[float]:
    embedding = self.model.encode(text, convert_to_tensor=False)
    return embedding.tolist()


class OpenAIEmbedder(Embedder):
  """OpenAI embeddings API"""

  def __init__(self, api_key: str, model: str = "text-embedding-ada-002",
               dimension: int = 1536, timeout: float = 30.0, client=None):
    from openai import OpenAI

    self.model = model
    self.dimension = dimension
    self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

  def embed_text(self, text: str) -> List[float]:
    try:
      response = self.client.embeddings.create(model=self.model, input=text)
    except Exception as e:
      raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e
    return list(response.data[0].embedding)


def create_embedder(config: Dict[str, Any]) -> Embedder:
  """Factory function to create the configured embedder"""
  embedding_config = config['models']['embedding']
  provider = embedding_config.get('provider', 'openai')

  if provider == "openai":
    api_key_env_var = embedding_config.get('api_key_env', 'OPENAI_API_KEY')
    api_key = os.environ.get(api_key_env_var)
    if not api_key:
      raise ConfigError(f"Missing {api_key_env_var} environment variable")
    return OpenAIEmbedder(
      api_key = api_key,
      model = embedding_config.get('model_name', 'text-embedding-ada-002'),
      dimension = embedding_config.get('dimension', 1536),
      timeout = embedding_config.get('timeout_seconds', 30)
    )

  elif provider == "sentence_transformers":
    return SentenceTransformerEmbedder(embedding_config['local_model_name'])

  else:
    raise ConfigError(f"Unknown embedding provider: {provider}. Use 'openai' or 'sentence_transformers'")
