from .extractor import ContentExtractor, ExtractedContent, detect_document_type

__all__ = ['ContentExtractor', 'ExtractedContent', 'detect_document_type']
