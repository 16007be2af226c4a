"""
Shared fixtures: an in-memory stand-in for the Pinecone client and match builders.
"""

import math
import re
import zlib
from types import SimpleNamespace
from typing import Dict, Any, List

import pytest

from ragplay.rag.models import ChunkMetadata, RetrievedMatch

WORD = re.compile(r"\w+")


def embed_text(text: str, dimension: int) -> List[float]:
    """Hashed bag-of-words vector, L2-normalised."""
    vector = [0.0] * dimension
    for word in WORD.findall(text.lower()):
        vector[zlib.crc32(word.encode("utf-8")) % dimension] += 1.0
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return vector
    return [value / norm for value in vector]


class FakeIndex:
    """Cosine-similarity index held in memory."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.records: Dict[str, Dict[str, Any]] = {}
        self.upsert_calls: List[int] = []
        self.query_error = None

    def upsert(self, vectors):
        self.upsert_calls.append(len(vectors))
        for vector in vectors:
            self.records[vector["id"]] = vector

    def query(self, vector, top_k, include_metadata=False):
        if self.query_error:
            raise self.query_error
        scored = []
        for record in self.records.values():
            score = sum(a * b for a, b in zip(vector, record["values"]))
            scored.append(SimpleNamespace(
                id=record["id"],
                score=score,
                metadata=dict(record["metadata"]) if include_metadata else None,
            ))
        scored.sort(key=lambda match: match.score, reverse=True)
        return SimpleNamespace(matches=scored[:top_k])

    def describe_index_stats(self):
        return SimpleNamespace(
            total_vector_count=len(self.records),
            dimension=self.dimension,
            index_fullness=0.0,
            namespaces={"": SimpleNamespace(vector_count=len(self.records))},
        )

    def delete(self, delete_all=False):
        if delete_all:
            self.records.clear()


class FakeInference:
    def __init__(self, dimension: int):
        self.dimension = dimension
        self.calls: List[Dict[str, Any]] = []
        self.error = None

    def embed(self, model, inputs, parameters=None):
        self.calls.append({"model": model, "inputs": list(inputs), "parameters": parameters})
        if self.error:
            raise self.error
        return {"data": [{"values": embed_text(text, self.dimension)} for text in inputs]}


class FakePinecone:
    """Just enough of ``pinecone.Pinecone`` for the vector store."""

    def __init__(self, dimension: int = 1024, existing: bool = True, index_name: str = "rag-assessment"):
        self.dimension = dimension
        self.inference = FakeInference(dimension)
        self.indexes: Dict[str, FakeIndex] = {}
        self.created: List[str] = []
        if existing:
            self.indexes[index_name] = FakeIndex(dimension)

    def list_indexes(self):
        names = list(self.indexes)
        return SimpleNamespace(names=lambda: names)

    def create_index(self, name, dimension, metric, spec):
        self.created.append(name)
        self.indexes[name] = FakeIndex(dimension)

    def describe_index(self, name):
        return SimpleNamespace(status={"ready": True})

    def Index(self, name):
        return self.indexes[name]


@pytest.fixture
def fake_pinecone():
    return FakePinecone()


def make_match(idx: int, score: float, text: str = None, title: str = "Doc",
               section: str = "Content") -> RetrievedMatch:
    text = text or f"Passage {idx} text."
    return RetrievedMatch(
        id=f"chunk-{idx}",
        score=score,
        text=text,
        metadata=ChunkMetadata(
            source="user_upload",
            title=title,
            section=section,
            position=idx,
            token_estimate=len(text) // 4,
            char_count=len(text),
        ),
        idx=idx,
    )


@pytest.fixture
def matches():
    return [
        make_match(0, 0.91, "Mars has two moons, Phobos and Deimos."),
        make_match(1, 0.85, "Jupiter is the largest planet."),
        make_match(2, 0.85, "Saturn has prominent rings."),
        make_match(3, 0.72, "Venus is the hottest planet."),
    ]


@pytest.fixture
def match_factory():
    return make_match
