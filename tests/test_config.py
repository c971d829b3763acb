from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from urban_rag.embeddings.embedder import OpenAIEmbedder, create_embedder
from urban_rag.errors import ConfigError, EmbeddingError
from urban_rag.pipeline.settings import PipelineSettings
from urban_rag.utils.config import load_config


def test_repository_config_loads():
  config = load_config()
  assert config["database"]["collection_name"] == "documents"
  assert config["chunking"]["chunk_size"] == 1000
  assert config["chunking"]["overlap"] == 200


def test_config_path_from_environment(tmp_path, monkeypatch):
  path = tmp_path / "config.yaml"
  path.write_text("pipeline:\n  embed_batch_size: 4\n  unknown_key: 1\n", encoding="utf-8")
  monkeypatch.setenv("URBAN_RAG_CONFIG", str(path))

  config = load_config()
  settings = PipelineSettings.from_config(config)

  assert settings.embed_batch_size == 4
  assert settings.process_batch_size == 5


def test_settings_without_delays():
  settings = PipelineSettings.without_delays(retry_attempts=1)
  assert settings.embed_item_delay == 0
  assert settings.year_delay == 0
  assert settings.backoff_max == 0
  assert settings.retry_attempts == 1
  assert settings.bulk_max_documents == 10


class TestEmbedderFactory:

  def test_missing_key(self, monkeypatch):
    monkeypatch.delenv("TEST_EMBED_KEY", raising=False)
    with pytest.raises(ConfigError):
      create_embedder({"models": {"embedding": {"provider": "openai", "api_key_env": "TEST_EMBED_KEY"}}})

  def test_unknown_provider(self):
    with pytest.raises(ConfigError):
      create_embedder({"models": {"embedding": {"provider": "word2vec"}}})

  def test_openai_embedder(self):
    client = MagicMock()
    client.embeddings.create.return_value = SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2], index=0)])
    embedder = OpenAIEmbedder(api_key="k", client=client)

    assert embedder.embed_text("testo") == [0.1, 0.2]
    client.embeddings.create.assert_called_once_with(model="text-embedding-ada-002", input="testo")

  def test_openai_failure_is_embedding_error(self):
    client = MagicMock()
    client.embeddings.create.side_effect = RuntimeError("429 Too Many Requests")
    with pytest.raises(EmbeddingError):
      OpenAIEmbedder(api_key="k", client=client).embed_text("testo")
