from .embedder import Embedder, SentenceTransformerEmbedder, OpenAIEmbedder, create_embedder

__all__ = ['Embedder', 'SentenceTransformerEmbedder', 'OpenAIEmbedder', 'create_embedder']
