"""
Pinecone vector store with hosted embeddings.
"""

import logging
import time
from enum import Enum
from typing import Dict, Any, List, Optional

from pinecone import Pinecone, ServerlessSpec

from ..config import get_secret
from ..errors import ProviderError, RateLimitError, is_rate_limit_error
from .models import (
    Chunk,
    ChunkMetadata,
    RetrievalResult,
    RetrievedMatch,
    UpsertResult,
    estimate_tokens,
)

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = "llama-text-embed-v2"
EMBEDDING_DIMENSION = 1024
# Pinecone caps top_k at 1000 when metadata is returned
MAX_LISTING_TOP_K = 1000


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


def _embedding_values(item: Any) -> List[float]:
    """Pull the dense vector out of one embedding record."""
    if isinstance(item, dict):
        values = item.get("values")
    else:
        values = getattr(item, "values", None)
    if not values:
        raise ProviderError("Invalid embedding response from Pinecone")
    return list(values)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class PineconeVectorStore:
    """Upserts chunks into and queries a Pinecone index.

    Embeddings are computed by Pinecone's hosted model; texts are sent as
    ``passage`` on upsert and ``query`` on retrieval.
    """

    def __init__(self, config: Dict[str, Any], client: Optional[Pinecone] = None):
        self.config = config
        self.index_name = config.get("index_name", "rag-assessment")
        self.api_key = get_secret(config, "api_key", "PINECONE_API_KEY")
        self.embedding_model = config.get("embedding_model", EMBEDDING_MODEL)
        self.dimension = config.get("dimension", EMBEDDING_DIMENSION)
        self.cloud = config.get("cloud", "aws")
        self.region = config.get("region", "us-east-1")
        self.embed_batch_size = config.get("embed_batch_size", 10)
        self.upsert_batch_size = config.get("upsert_batch_size", 100)
        self.ready_timeout = config.get("index_ready_timeout", 120)
        self.ready_poll_interval = config.get("index_ready_poll_interval", 2)

        self.pc = client
        self.index = None
        self.state = ConnectionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def connect(self) -> None:
        """Open the index, creating it when missing. Safe to call repeatedly."""
        if self.is_connected:
            return

        if self.pc is None:
            if not self.api_key:
                raise ProviderError("PINECONE_API_KEY is not set")
            self.pc = Pinecone(api_key=self.api_key)

        try:
            if self.index_name not in self.pc.list_indexes().names():
                logger.info(f"Index '{self.index_name}' not found. Creating...")
                self.pc.create_index(
                    name=self.index_name,
                    dimension=self.dimension,
                    metric="cosine",
                    spec=ServerlessSpec(cloud=self.cloud, region=self.region),
                )
                self._wait_until_ready()
            self.index = self.pc.Index(self.index_name)
        except Exception as e:
            logger.error(f"Failed to setup Pinecone index: {e}")
            raise

        self.state = ConnectionState.CONNECTED
        logger.info(f"Connected to Pinecone index: {self.index_name}")

    def _wait_until_ready(self) -> None:
        deadline = time.monotonic() + self.ready_timeout
        while True:
            status = self.pc.describe_index(self.index_name).status
            ready = status.get("ready") if isinstance(status, dict) else getattr(status, "ready", False)
            if ready:
                logger.info(f"Index '{self.index_name}' is ready")
                return
            if time.monotonic() > deadline:
                raise ProviderError(
                    f"Index '{self.index_name}' not ready after {self.ready_timeout}s"
                )
            time.sleep(self.ready_poll_interval)

    def _embed(self, texts: List[str], input_type: str) -> List[List[float]]:
        """Embed one batch of texts with the hosted embedding model."""
        try:
            response = self.pc.inference.embed(
                model=self.embedding_model,
                inputs=texts,
                parameters={"input_type": input_type, "truncate": "END"},
            )
        except Exception as e:
            if is_rate_limit_error(e):
                if input_type == "passage":
                    message = (
                        "Rate limit reached: You have exceeded the maximum tokens per minute "
                        "for the embedding model. Please try with a smaller document."
                    )
                else:
                    message = "Rate limit exceeded for embedding API"
                raise RateLimitError(message) from e
            raise

        data = response.get("data") if isinstance(response, dict) else getattr(response, "data", None)
        vectors = [_embedding_values(item) for item in (data or [])]
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Invalid embedding response from Pinecone: expected {len(texts)} vectors, got {len(vectors)}"
            )
        return vectors

    def upsert(self, chunks: List[Chunk]) -> UpsertResult:
        """
        Embed and store chunks.

        Embedding and write batches run one after another so a failure leaves
        only the batches already committed in the index.

        Args:
            chunks: Chunks produced by the chunker

        Returns:
            UpsertResult with the number of vectors written
        """
        self.connect()
        start = time.perf_counter()

        logger.info(f"Generating embeddings for {len(chunks)} chunks using {self.embedding_model}...")
        embeddings: List[List[float]] = []
        for i in range(0, len(chunks), self.embed_batch_size):
            batch = chunks[i:i + self.embed_batch_size]
            embeddings.extend(self._embed([chunk.text for chunk in batch], "passage"))

        vectors = [
            {
                "id": chunk.id,
                "values": embedding,
                "metadata": {**chunk.metadata.to_dict(), "text": chunk.text},
            }
            for chunk, embedding in zip(chunks, embeddings)
        ]

        upserted_count = 0
        for i in range(0, len(vectors), self.upsert_batch_size):
            batch = vectors[i:i + self.upsert_batch_size]
            try:
                self.index.upsert(vectors=batch)
            except Exception as e:
                if is_rate_limit_error(e):
                    raise RateLimitError(f"Rate limit exceeded while writing vectors: {e}") from e
                raise
            upserted_count += len(batch)
            logger.info(f"Upserted {upserted_count}/{len(vectors)} chunks")

        return UpsertResult(
            upserted_count=upserted_count,
            duration_ms=_elapsed_ms(start),
            index_name=self.index_name,
            embedding_model=self.embedding_model,
        )

    def query(self, query_text: str, top_k: int = 10) -> RetrievalResult:
        """
        Retrieve the nearest chunks for a query.

        Args:
            query_text: The user's question
            top_k: Number of candidates to request

        Returns:
            RetrievalResult with matches in descending similarity order
        """
        self.connect()
        start = time.perf_counter()

        query_vector = self._embed([query_text], "query")[0]

        try:
            response = self.index.query(vector=query_vector, top_k=top_k, include_metadata=True)
        except Exception as e:
            logger.error(f"Error querying Pinecone: {e}")
            if is_rate_limit_error(e):
                raise RateLimitError(f"Rate limit exceeded for vector query: {e}") from e
            raise

        matches = []
        for idx, match in enumerate(response.matches or []):
            metadata = match.metadata or {}
            matches.append(RetrievedMatch(
                id=match.id,
                score=float(match.score or 0.0),
                text=metadata.get("text", ""),
                metadata=ChunkMetadata.from_dict(metadata, fallback_position=idx),
                idx=idx,
            ))

        return RetrievalResult(
            matches=matches,
            duration_ms=_elapsed_ms(start),
            query_tokens=estimate_tokens(query_text),
        )

    def stats(self) -> Dict[str, Any]:
        """Get Pinecone index statistics."""
        self.connect()
        index_stats = self.index.describe_index_stats()
        namespaces = {
            name: getattr(summary, "vector_count", 0)
            for name, summary in (index_stats.namespaces or {}).items()
        }
        return {
            "index_name": self.index_name,
            "embedding_model": self.embedding_model,
            "total_vector_count": index_stats.total_vector_count,
            "dimension": index_stats.dimension,
            "index_fullness": getattr(index_stats, "index_fullness", None),
            "namespaces": namespaces,
        }

    def clear(self) -> None:
        """Delete every vector in the index."""
        self.connect()
        self.index.delete(delete_all=True)
        logger.info(f"Cleared all vectors from Pinecone index {self.index_name}")

    def list_documents(self) -> List[Dict[str, Any]]:
        """Group stored chunks by document title."""
        self.connect()
        response = self.index.query(
            vector=[1.0] * self.dimension,
            top_k=MAX_LISTING_TOP_K,
            include_metadata=True,
        )

        documents: Dict[str, Dict[str, Any]] = {}
        for match in response.matches or []:
            metadata = match.metadata or {}
            title = metadata.get("title") or "Untitled"
            if title not in documents:
                documents[title] = {
                    "title": title,
                    "source": metadata.get("source") or "unknown",
                    "chunksCount": 1,
                    "firstChunkId": match.id,
                }
            else:
                documents[title]["chunksCount"] += 1

        return list(documents.values())
