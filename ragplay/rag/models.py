"""
Data models for the RAG module.
"""

import math
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Any, List, Optional

CHARS_PER_TOKEN = 4

DEFAULT_SOURCE = "user_upload"
DEFAULT_TITLE = "Untitled Document"
DEFAULT_SECTION = "Content"


def estimate_tokens(text: str) -> int:
    """Approximate token count as ceil(chars / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class ChunkMetadata:
    """Citation metadata attached to every chunk."""
    source: str
    title: str
    section: str
    position: int
    token_estimate: int
    char_count: int

    def to_dict(self) -> Dict[str, Any]:
        """Metadata record as stored alongside the vector."""
        return {
            "source": self.source,
            "title": self.title,
            "section": self.section,
            "position": self.position,
            "tokenEstimate": self.token_estimate,
            "charCount": self.char_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback_position: int = 0) -> "ChunkMetadata":
        """Rebuild metadata from a vector store record, tolerating missing keys."""
        position = data.get("position")
        return cls(
            source=data.get("source") or "",
            title=data.get("title") or "",
            section=data.get("section") or "",
            position=int(position) if position is not None else fallback_position,
            token_estimate=int(data.get("tokenEstimate") or 0),
            char_count=int(data.get("charCount") or 0),
        )


@dataclass(frozen=True)
class Chunk:
    """A bounded passage of a source document."""
    id: str
    text: str
    metadata: ChunkMetadata


@dataclass(frozen=True)
class RetrievedMatch:
    """A nearest-neighbour hit returned by the vector store."""
    id: str
    score: float
    text: str
    metadata: ChunkMetadata
    idx: int


@dataclass(frozen=True)
class RankedChunk:
    """A retrieved match after reranking.

    ``ranking_score`` is the single ordering key: the cross-encoder relevance
    when the reranker answered, otherwise the retrieval similarity.
    """
    id: str
    text: str
    metadata: ChunkMetadata
    retrieval_score: float
    ranking_score: float
    rerank_index: Optional[int]
    idx: int

    @classmethod
    def from_match(cls, match: RetrievedMatch, relevance_score: Optional[float] = None,
                   rerank_index: Optional[int] = None) -> "RankedChunk":
        return cls(
            id=match.id,
            text=match.text,
            metadata=match.metadata,
            retrieval_score=match.score,
            ranking_score=match.score if relevance_score is None else relevance_score,
            rerank_index=rerank_index,
            idx=match.idx,
        )


@dataclass(frozen=True)
class Citation:
    """A bracket marker in the answer resolved to its source chunk."""
    number: int
    text: str
    source: str
    section: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Source:
    """A numbered source shown alongside the answer."""
    number: int
    title: str
    section: str
    text: str
    relevance_score: float
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "section": self.section,
            "text": self.text,
            "relevanceScore": round(self.relevance_score, 4),
            "position": self.position,
        }


@dataclass(frozen=True)
class TokenUsage:
    input: int
    output: int

    @property
    def total(self) -> int:
        return self.input + self.output

    def to_dict(self) -> Dict[str, Any]:
        return {"input": self.input, "output": self.output, "total": self.total}


@dataclass(frozen=True)
class CostEstimate:
    """Rough cost of one generation. All-zero is valid for free models."""
    input_cost: float
    output_cost: float
    currency: str = "USD"

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost

    @property
    def is_free(self) -> bool:
        return self.total_cost == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputCost": f"{self.input_cost:.6f}",
            "outputCost": f"{self.output_cost:.6f}",
            "totalCost": f"{self.total_cost:.6f}",
            "currency": self.currency,
        }


@dataclass
class UpsertResult:
    upserted_count: int
    duration_ms: float
    index_name: str
    embedding_model: str


@dataclass
class RetrievalResult:
    matches: List[RetrievedMatch]
    duration_ms: float
    query_tokens: int


@dataclass
class RerankResult:
    matches: List[RankedChunk]
    duration_ms: float
    original_count: int
    fallback: bool = False
    error: Optional[str] = None


class GenerationError(Enum):
    """Why a generation degraded to a canned answer."""
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVICE_UNAVAILABLE = "service_unavailable"
    GENERATION_ERROR = "generation_error"


@dataclass
class GenerationResult:
    """Answer payload from the generator.

    A result with ``error`` set is the degraded variant: ``answer`` holds a
    user-facing fallback message and ``citations`` is empty.
    """
    answer: str
    citations: List[Citation]
    tokens_used: TokenUsage
    model: str
    duration_ms: float
    error: Optional[GenerationError] = None
    no_context: bool = False

    @property
    def degraded(self) -> bool:
        return self.error is not None


class PipelineStage(Enum):
    """Stages of a single query, in execution order."""
    START = "start"
    RETRIEVE = "retrieve"
    NO_DOCS = "no_docs"
    RERANK = "rerank"
    GENERATE = "generate"
    DONE = "done"


@dataclass
class StageTimings:
    retrieval_ms: Optional[float] = None
    rerank_ms: Optional[float] = None
    generation_ms: Optional[float] = None
    total_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        timing = {
            "retrievalMs": self.retrieval_ms,
            "rerankMs": self.rerank_ms,
            "generationMs": self.generation_ms,
            "totalMs": self.total_ms,
        }
        return {key: round(value, 2) for key, value in timing.items() if value is not None}


@dataclass
class QueryResult:
    """Response of one query through the pipeline."""
    query: str
    answer: str
    citations: List[Citation]
    sources: List[Source]
    timing: StageTimings
    tokens: Optional[TokenUsage] = None
    cost_estimate: Optional[CostEstimate] = None
    model: Optional[str] = None
    chunks_retrieved: int = 0
    rerank_fallback: bool = False
    generation_error: Optional[GenerationError] = None
    no_documents: bool = False
    stage: PipelineStage = PipelineStage.DONE
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.rerank_fallback or self.generation_error is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": True,
            "answer": self.answer,
            "citations": [citation.to_dict() for citation in self.citations],
            "sources": [source.to_dict() for source in self.sources],
            "timing": self.timing.to_dict(),
        }
        if self.no_documents:
            payload["noDocuments"] = True
            return payload

        payload["tokens"] = self.tokens.to_dict() if self.tokens else None
        payload["costEstimate"] = self.cost_estimate.to_dict() if self.cost_estimate else None
        payload["metadata"] = {
            "query": self.query,
            "chunksRetrieved": self.chunks_retrieved,
            "chunksAfterRerank": len(self.sources),
            "model": self.model,
            "rerankFallback": self.rerank_fallback,
            "generationError": self.generation_error.value if self.generation_error else None,
            **self.metadata,
        }
        return payload
