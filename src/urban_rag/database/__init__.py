from .document_store import DocumentStore, InsertOutcome, PENDING_STAGES
from .mongodb_client import MongoDocumentStore, create_mongo_client

__all__ = ['DocumentStore', 'InsertOutcome', 'PENDING_STAGES', 'MongoDocumentStore', 'create_mongo_client']
