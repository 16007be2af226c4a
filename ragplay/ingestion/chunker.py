"""
Sentence-aligned text chunker with overlap and citation metadata.
"""

import logging
import re
import uuid
from typing import Dict, Any, List, Optional

from ..rag.models import (
    CHARS_PER_TOKEN,
    DEFAULT_SECTION,
    DEFAULT_SOURCE,
    DEFAULT_TITLE,
    Chunk,
    ChunkMetadata,
    estimate_tokens,
)

logger = logging.getLogger(__name__)

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
MARKDOWN_HEADER = re.compile(r"^#+\s+(.+)$")


def split_into_sentences(text: str) -> List[str]:
    """Split text on sentence-terminal punctuation followed by whitespace."""
    return [sentence for sentence in SENTENCE_BOUNDARY.split(text) if sentence.strip()]


def detect_header(line: str, max_length: int = 80) -> Optional[str]:
    """Return the section label if the line is a markdown or ALL CAPS header."""
    stripped = line.strip()
    match = MARKDOWN_HEADER.match(stripped)
    if match:
        return match.group(1).strip()
    # isupper() needs at least one cased character, so "1." is not a header
    if 3 < len(stripped) < max_length and stripped.isupper():
        return stripped
    return None


class TextChunker:
    """Greedy sentence packer producing overlapping, bounded chunks."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.min_chunk_tokens = config.get("min_chunk_tokens", 800)
        self.max_chunk_tokens = config.get("max_chunk_tokens", 1200)
        self.overlap_percent = config.get("overlap_percent", 0.12)
        self.max_header_length = config.get("max_header_length", 80)

        if self.min_chunk_tokens <= 0 or self.max_chunk_tokens < self.min_chunk_tokens:
            raise ValueError(
                f"Invalid chunk band: {self.min_chunk_tokens}-{self.max_chunk_tokens} tokens"
            )
        if not 0 <= self.overlap_percent < 1:
            raise ValueError(f"Overlap percent must be in [0, 1), got {self.overlap_percent}")

        target_tokens = (self.min_chunk_tokens + self.max_chunk_tokens) / 2
        self.overlap_tokens = int(target_tokens * self.overlap_percent)

    def chunk(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> List[Chunk]:
        """
        Split a document into ordered chunks.

        Args:
            text: Raw document text
            metadata: Optional ``source`` and ``title`` of the document

        Returns:
            Chunks with contiguous 0-based positions. Empty input yields none.
        """
        if not text or not text.strip():
            return []

        metadata = metadata or {}
        source = metadata.get("source") or DEFAULT_SOURCE
        title = metadata.get("title") or DEFAULT_TITLE

        sentences = split_into_sentences(text.strip())
        sections = self._label_sections(sentences)

        chunks: List[Chunk] = []
        current: List[int] = []
        current_tokens = 0

        for i, sentence in enumerate(sentences):
            sentence_tokens = estimate_tokens(sentence)

            if current and current_tokens + sentence_tokens > self.max_chunk_tokens:
                chunks.append(self._build_chunk(sentences, sections, current, len(chunks), source, title))
                current = self._overlap_tail(sentences, current)
                current_tokens = sum(estimate_tokens(sentences[j]) for j in current)
                # an oversized sentence always stands alone
                if current_tokens + sentence_tokens > self.max_chunk_tokens:
                    current = []
                    current_tokens = 0

            current.append(i)
            current_tokens += sentence_tokens

        if current:
            chunks.append(self._build_chunk(sentences, sections, current, len(chunks), source, title))

        logger.info(f"Chunked '{title}' ({len(text)} chars) into {len(chunks)} chunks")
        return chunks

    def describe(self) -> Dict[str, Any]:
        """Chunking configuration as reported by the health check."""
        return {
            "minChunkSize": self.min_chunk_tokens,
            "maxChunkSize": self.max_chunk_tokens,
            "overlapPercent": round(self.overlap_percent * 100, 2),
            "overlapTokens": self.overlap_tokens,
            "charsPerToken": CHARS_PER_TOKEN,
        }

    def _label_sections(self, sentences: List[str]) -> List[str]:
        """Assign each sentence the most recent header seen before its body."""
        current_section = DEFAULT_SECTION
        labels = []
        for sentence in sentences:
            label = current_section
            body_started = False
            for line in sentence.split("\n"):
                if not line.strip():
                    continue
                header = detect_header(line, self.max_header_length)
                if header is None:
                    body_started = True
                    continue
                current_section = header
                if not body_started:
                    label = header
            labels.append(label)
        return labels

    def _overlap_tail(self, sentences: List[str], indices: List[int]) -> List[int]:
        """Longest run of trailing sentences that fits in the overlap budget."""
        tail: List[int] = []
        tail_tokens = 0
        for j in reversed(indices):
            sentence_tokens = estimate_tokens(sentences[j])
            if tail_tokens + sentence_tokens > self.overlap_tokens:
                break
            tail.insert(0, j)
            tail_tokens += sentence_tokens
        return tail

    @staticmethod
    def _build_chunk(sentences: List[str], sections: List[str], indices: List[int],
                     position: int, source: str, title: str) -> Chunk:
        chunk_text = " ".join(sentences[j] for j in indices)
        return Chunk(
            id=str(uuid.uuid4()),
            text=chunk_text,
            metadata=ChunkMetadata(
                source=source,
                title=title,
                section=sections[indices[0]],
                position=position,
                token_estimate=estimate_tokens(chunk_text),
                char_count=len(chunk_text),
            ),
        )
