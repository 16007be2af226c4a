"""
Cross-encoder reranking through Cohere, with a retrieval-score fallback.
"""

import logging
import time
from typing import Dict, Any, List, Optional

import cohere

from ..config import get_secret
from ..errors import ProviderError
from .models import RankedChunk, RerankResult, RetrievedMatch

logger = logging.getLogger(__name__)

RERANK_MODEL = "rerank-english-v3.0"


def fallback_ranking(candidates: List[RetrievedMatch], top_n: int) -> List[RankedChunk]:
    """Order candidates by retrieval score; ties keep their original order."""
    ordered = sorted(candidates, key=lambda match: match.score, reverse=True)
    return [RankedChunk.from_match(match) for match in ordered[:top_n]]


class CohereReranker:
    """Reranks retrieved matches with a hosted cross-encoder."""

    def __init__(self, config: Dict[str, Any], client: Optional[cohere.AsyncClientV2] = None):
        self.config = config
        self.model = config.get("model", RERANK_MODEL)
        self.api_key = get_secret(config, "api_key", "COHERE_API_KEY")
        self.timeout = config.get("timeout", 30)
        self.client = client

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    def connect(self) -> None:
        """Create the Cohere client once. Safe to call repeatedly."""
        if self.is_connected:
            return
        if not self.api_key:
            raise ProviderError("COHERE_API_KEY is not set")
        self.client = cohere.AsyncClientV2(api_key=self.api_key, timeout=self.timeout)
        logger.info("Cohere client initialized")

    async def rerank(self, query: str, candidates: List[RetrievedMatch], top_n: int = 5) -> RerankResult:
        """
        Rerank retrieved matches against the query.

        Any provider failure falls back to retrieval-score order and flags the
        result, so the query still completes.

        Args:
            query: The user's question
            candidates: Matches from the vector store
            top_n: Number of matches to keep

        Returns:
            RerankResult with at most ``top_n`` matches
        """
        if not candidates:
            return RerankResult(matches=[], duration_ms=0.0, original_count=0)

        start = time.perf_counter()
        try:
            matches = await self._rerank_remote(query, candidates, top_n)
        except Exception as e:
            logger.warning(f"Cohere rerank failed, falling back to retrieval scores: {e}")
            return RerankResult(
                matches=fallback_ranking(candidates, top_n),
                duration_ms=(time.perf_counter() - start) * 1000,
                original_count=len(candidates),
                fallback=True,
                error=str(e),
            )

        logger.info(f"Reranked {len(candidates)} chunks to top {len(matches)}")
        return RerankResult(
            matches=matches,
            duration_ms=(time.perf_counter() - start) * 1000,
            original_count=len(candidates),
        )

    async def _rerank_remote(self, query: str, candidates: List[RetrievedMatch], top_n: int) -> List[RankedChunk]:
        self.connect()
        response = await self.client.rerank(
            model=self.model,
            query=query,
            documents=[candidate.text for candidate in candidates],
            top_n=min(top_n, len(candidates)),
        )

        matches = []
        for result in response.results or []:
            if not 0 <= result.index < len(candidates):
                raise ProviderError(f"Reranker returned out-of-range index {result.index}")
            matches.append(RankedChunk.from_match(
                candidates[result.index],
                relevance_score=float(result.relevance_score),
                rerank_index=result.index,
            ))
        if not matches:
            raise ProviderError("Reranker returned no results")
        return matches[:top_n]

    def describe(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "provider": "Cohere",
            "description": "English language reranker for improved retrieval accuracy",
        }
