"""
Document ingestion: chunking raw text and loading it into the vector index.
"""

from .chunker import TextChunker
from .ingestion_pipeline import DocumentIngestor, IngestionResult

__all__ = ["TextChunker", "DocumentIngestor", "IngestionResult"]
