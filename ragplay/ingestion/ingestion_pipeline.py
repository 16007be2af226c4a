"""
Ingestion pipeline: validate text, chunk it, and upsert the chunks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..errors import ValidationError
from ..rag.models import DEFAULT_SOURCE, DEFAULT_TITLE
from ..rag.vector_store import PineconeVectorStore
from .chunker import TextChunker

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Result of document ingestion."""
    title: str
    original_length: int
    chunks_created: int
    vectors_upserted: int
    index_name: str
    embedding_model: str
    chunking_config: Dict[str, Any]
    chunking_ms: float
    upsert_ms: float
    total_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "title": self.title,
            "originalLength": self.original_length,
            "chunksCreated": self.chunks_created,
            "vectorsUpserted": self.vectors_upserted,
            "indexName": self.index_name,
            "embeddingModel": self.embedding_model,
            "chunkingConfig": self.chunking_config,
            "timing": {
                "chunkingMs": round(self.chunking_ms, 2),
                "upsertMs": round(self.upsert_ms, 2),
                "totalMs": round(self.total_ms, 2),
            },
        }


class DocumentIngestor:
    """Pipeline for ingesting user text into the vector index."""

    def __init__(self, config: Dict[str, Any], chunker: TextChunker, vector_store: PineconeVectorStore):
        self.config = config
        self.chunker = chunker
        self.vector_store = vector_store
        self.min_text_length = config.get("min_text_length", 50)
        self.supported_formats: List[str] = config.get("supported_formats", ["txt", "md"])

    async def ingest_text(self, text: Any, title: Optional[str] = None,
                          source: Optional[str] = None) -> IngestionResult:
        """
        Chunk and index one document.

        Args:
            text: Raw document text
            title: Document title used in citations
            source: Where the text came from

        Returns:
            IngestionResult with counts and per-step timing

        Raises:
            ValidationError: Text missing, too short, or produced no chunks
        """
        if not isinstance(text, str) or not text:
            raise ValidationError('Please provide a "text" field with your content')
        if len(text.strip()) < self.min_text_length:
            raise ValidationError(f"Please provide at least {self.min_text_length} characters of text")

        title = title or DEFAULT_TITLE
        start = time.perf_counter()

        chunks = self.chunker.chunk(text, {"title": title, "source": source or DEFAULT_SOURCE})
        chunking_ms = (time.perf_counter() - start) * 1000
        if not chunks:
            raise ValidationError("Could not create any chunks from the provided text")

        logger.info(f"Upserting {len(chunks)} chunks for '{title}'")
        loop = asyncio.get_running_loop()
        upsert = await loop.run_in_executor(None, self.vector_store.upsert, chunks)

        return IngestionResult(
            title=title,
            original_length=len(text),
            chunks_created=len(chunks),
            vectors_upserted=upsert.upserted_count,
            index_name=upsert.index_name,
            embedding_model=upsert.embedding_model,
            chunking_config=self.chunker.describe(),
            chunking_ms=chunking_ms,
            upsert_ms=upsert.duration_ms,
            total_ms=(time.perf_counter() - start) * 1000,
        )

    async def ingest_file(self, file_path: str, title: Optional[str] = None,
                          source: Optional[str] = None) -> IngestionResult:
        """Read a plain-text or markdown file and ingest it."""
        path = Path(file_path)
        suffix = path.suffix.lower()[1:]
        if suffix not in self.supported_formats:
            raise ValidationError(
                f"Unsupported file type '.{suffix}'. Supported: {', '.join(self.supported_formats)}"
            )
        if not path.is_file():
            raise ValidationError(f"File not found: {file_path}")

        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()

        logger.info(f"Read {len(text)} chars from {path.name}")
        return await self.ingest_text(text, title=title or path.stem, source=source or path.name)
