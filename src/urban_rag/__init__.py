"""urban-rag: regulatory document ingestion, chunking, embedding and retrieval"""

__version__ = "0.1.0"
