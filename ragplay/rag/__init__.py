"""
RAG (Retrieval-Augmented Generation) pipeline: retrieval, reranking and cited answers.
"""

from .answer_generator import AnswerGenerator
from .models import Chunk, QueryResult, RankedChunk, RetrievedMatch
from .orchestrator import QueryOrchestrator
from .reranker import CohereReranker
from .vector_store import PineconeVectorStore

__all__ = [
    "AnswerGenerator",
    "Chunk",
    "CohereReranker",
    "PineconeVectorStore",
    "QueryOrchestrator",
    "QueryResult",
    "RankedChunk",
    "RetrievedMatch",
]
