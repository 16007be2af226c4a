"""
Query orchestration: retrieve, rerank, generate.
"""

import asyncio
import logging
import time
from typing import Dict, Any, Optional, Tuple

from ..errors import QueryFailedError, ValidationError, is_rate_limit_error
from .answer_generator import NO_CONTEXT_ANSWER, AnswerGenerator, degraded_result
from .models import (
    DEFAULT_SECTION,
    GenerationError,
    PipelineStage,
    QueryResult,
    RerankResult,
    Source,
    StageTimings,
)
from .reranker import CohereReranker, fallback_ranking
from .vector_store import PineconeVectorStore

logger = logging.getLogger(__name__)

NO_DOCUMENTS_ANSWER = NO_CONTEXT_ANSWER


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class QueryOrchestrator:
    """Runs one question through the pipeline.

    Stages run strictly in sequence: RETRIEVE, then RERANK, then GENERATE.
    Only a retrieval failure aborts the query; an empty index short-circuits
    to a fixed answer, and rerank or generation failures degrade the result
    instead of failing it.
    """

    def __init__(self, vector_store: PineconeVectorStore, reranker: CohereReranker,
                 generator: AnswerGenerator, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.vector_store = vector_store
        self.reranker = reranker
        self.generator = generator
        self.default_top_k = config.get("top_k", 10)
        self.default_top_n = config.get("top_n", 5)
        self.min_query_length = config.get("min_query_length", 3)
        self.max_top_k = config.get("max_top_k", 100)

    def validate(self, query: Any, top_k: Optional[int], top_n: Optional[int]) -> Tuple[str, int, int]:
        """Check the request before any provider is called."""
        if not query or not isinstance(query, str):
            raise ValidationError('Please provide a "query" field with your question')
        query = query.strip()
        if len(query) < self.min_query_length:
            raise ValidationError(f"Please provide at least {self.min_query_length} characters")

        top_k = self.default_top_k if top_k is None else top_k
        top_n = self.default_top_n if top_n is None else top_n
        if isinstance(top_k, bool) or not isinstance(top_k, int) or not 1 <= top_k <= self.max_top_k:
            raise ValidationError(f"topK must be an integer between 1 and {self.max_top_k}")
        if isinstance(top_n, bool) or not isinstance(top_n, int) or top_n < 1:
            raise ValidationError("topN must be a positive integer")
        return query, top_k, top_n

    async def run(self, query: str, top_k: Optional[int] = None, top_n: Optional[int] = None) -> QueryResult:
        """
        Answer a question from the indexed documents.

        Args:
            query: The user's question (at least 3 characters)
            top_k: Candidates requested from the vector store
            top_n: Candidates kept after reranking

        Returns:
            QueryResult, possibly flagged as degraded

        Raises:
            ValidationError: The request is malformed
            QueryFailedError: Retrieval failed; carries the partial timing
        """
        query, top_k, top_n = self.validate(query, top_k, top_n)
        start = time.perf_counter()
        timing = StageTimings()

        logger.info(f"[{PipelineStage.RETRIEVE.value}] Query: \"{query[:50]}\" (topK={top_k}, topN={top_n})")
        stage_start = time.perf_counter()
        try:
            loop = asyncio.get_running_loop()
            retrieval = await loop.run_in_executor(None, self.vector_store.query, query, top_k)
        except Exception as e:
            timing.retrieval_ms = _elapsed_ms(stage_start)
            timing.total_ms = _elapsed_ms(start)
            logger.error(f"Retrieval failed: {e}")
            raise QueryFailedError(str(e), timing=timing, is_rate_limit=is_rate_limit_error(e)) from e
        timing.retrieval_ms = _elapsed_ms(stage_start)
        logger.info(f"Retrieved {len(retrieval.matches)} chunks")

        if not retrieval.matches:
            timing.total_ms = _elapsed_ms(start)
            logger.info(f"[{PipelineStage.NO_DOCS.value}] No documents indexed")
            return QueryResult(
                query=query,
                answer=NO_DOCUMENTS_ANSWER,
                citations=[],
                sources=[],
                timing=timing,
                no_documents=True,
                stage=PipelineStage.NO_DOCS,
            )

        logger.info(f"[{PipelineStage.RERANK.value}] Reranking {len(retrieval.matches)} chunks")
        stage_start = time.perf_counter()
        try:
            rerank = await self.reranker.rerank(query, retrieval.matches, top_n)
        except Exception as e:
            logger.warning(f"Reranker raised, using retrieval order: {e}")
            rerank = RerankResult(
                matches=fallback_ranking(retrieval.matches, top_n),
                duration_ms=_elapsed_ms(stage_start),
                original_count=len(retrieval.matches),
                fallback=True,
                error=str(e),
            )
        timing.rerank_ms = _elapsed_ms(stage_start)

        logger.info(f"[{PipelineStage.GENERATE.value}] Generating answer from {len(rerank.matches)} chunks")
        stage_start = time.perf_counter()
        try:
            generation = await self.generator.generate(query, rerank.matches)
        except Exception as e:
            logger.error(f"Generator raised, returning degraded answer: {e}")
            generation = degraded_result(
                GenerationError.GENERATION_ERROR,
                self.generator.llm_manager.model_name(),
                0,
                _elapsed_ms(stage_start),
                detail=str(e),
            )
        timing.generation_ms = _elapsed_ms(stage_start)
        timing.total_ms = _elapsed_ms(start)
        logger.info(f"[{PipelineStage.DONE.value}] Answer generated ({len(generation.answer)} chars)")

        sources = [
            Source(
                number=number,
                title=chunk.metadata.title or "Document",
                section=chunk.metadata.section or DEFAULT_SECTION,
                text=chunk.text,
                relevance_score=chunk.ranking_score,
                position=chunk.metadata.position,
            )
            for number, chunk in enumerate(rerank.matches, start=1)
        ]

        return QueryResult(
            query=query,
            answer=generation.answer,
            citations=generation.citations,
            sources=sources,
            timing=timing,
            tokens=generation.tokens_used,
            cost_estimate=self.generator.estimate_cost(generation.tokens_used),
            model=generation.model,
            chunks_retrieved=len(retrieval.matches),
            rerank_fallback=rerank.fallback,
            generation_error=generation.error,
        )
