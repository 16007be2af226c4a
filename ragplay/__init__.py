"""
RAG Playground

Submit free text, store it as searchable passages in a hosted vector index,
and answer questions with retrieval, reranking and cited answer generation.
"""

__version__ = "1.0.0"
__author__ = "RAG Playground Team"
