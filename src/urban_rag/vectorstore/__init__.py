from .vector_index import VectorIndex, VectorRecord, VectorMatch, MongoVectorIndex, cosine_similarity

__all__ = ['VectorIndex', 'VectorRecord', 'VectorMatch', 'MongoVectorIndex', 'cosine_similarity']
