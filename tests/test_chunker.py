"""
Tests for the sentence-aligned chunker.
"""

import random

import pytest

from ragplay.ingestion.chunker import TextChunker, detect_header, split_into_sentences
from ragplay.rag.models import estimate_tokens


def make_sentence(i: int) -> str:
    """A unique 100-character sentence (25 estimated tokens)."""
    return f"Sentence {i:04d} " + "x" * 85 + "."


def make_varied_sentence(i: int, length: int) -> str:
    return f"S{i:03d} " + "v" * (length - 6) + "."


class TestSentenceSplitting:
    """Test sentence and header detection helpers."""

    def test_splits_on_terminal_punctuation(self):
        sentences = split_into_sentences("First one. Second one! Third one? Fourth")
        assert sentences == ["First one.", "Second one!", "Third one?", "Fourth"]

    def test_keeps_abbreviation_like_dots_without_whitespace(self):
        assert split_into_sentences("Version 3.14 is out.") == ["Version 3.14 is out."]

    @pytest.mark.parametrize("line, expected", [
        ("# Introduction", "Introduction"),
        ("### Deep Dive  ", "Deep Dive"),
        ("METHODS", "METHODS"),
        ("RESULTS AND DISCUSSION", "RESULTS AND DISCUSSION"),
        ("ABC", None),
        ("1.", None),
        ("A normal line of text.", None),
    ])
    def test_detect_header(self, line, expected):
        assert detect_header(line) == expected

    def test_long_uppercase_line_is_not_a_header(self):
        assert detect_header("A" * 80) is None


class TestTextChunker:
    """Test chunk boundaries, overlap and metadata."""

    @pytest.fixture
    def chunker(self):
        return TextChunker()

    def test_sixty_character_input(self, chunker):
        text = ("word " * 12)[:59] + "."
        assert len(text) == 60

        chunks = chunker.chunk(text)

        assert len(chunks) == 1
        assert chunks[0].metadata.position == 0
        assert chunks[0].metadata.token_estimate == 15
        assert chunks[0].metadata.char_count == 60

    @pytest.mark.parametrize("text", ["", "   ", "\n\t\n"])
    def test_empty_input_yields_no_chunks(self, chunker, text):
        assert chunker.chunk(text) == []

    def test_default_metadata(self, chunker):
        chunk = chunker.chunk("Just a short note about nothing in particular.")[0]

        assert chunk.metadata.title == "Untitled Document"
        assert chunk.metadata.source == "user_upload"
        assert chunk.metadata.section == "Content"

    def test_caller_metadata(self, chunker):
        chunk = chunker.chunk("Short text.", {"title": "Notes", "source": "notes.md"})[0]

        assert chunk.metadata.title == "Notes"
        assert chunk.metadata.source == "notes.md"

    def test_positions_are_contiguous(self, chunker):
        text = " ".join(make_sentence(i) for i in range(200))

        chunks = chunker.chunk(text)

        assert len(chunks) > 3
        assert [chunk.metadata.position for chunk in chunks] == list(range(len(chunks)))
        assert len({chunk.id for chunk in chunks}) == len(chunks)

    def test_consecutive_chunks_overlap(self, chunker):
        text = " ".join(make_sentence(i) for i in range(200))

        chunks = chunker.chunk(text)

        for previous, current in zip(chunks, chunks[1:]):
            previous_sentences = split_into_sentences(previous.text)
            current_sentences = split_into_sentences(current.text)
            # 120-token budget holds four 25-token sentences
            assert current_sentences[:4] == previous_sentences[-4:]
            assert current_sentences[4] != previous_sentences[-1]

    def test_chunks_close_before_exceeding_max(self, chunker):
        text = " ".join(make_sentence(i) for i in range(200))

        chunks = chunker.chunk(text)

        for chunk in chunks[:-1]:
            assert len(split_into_sentences(chunk.text)) * 25 <= chunker.max_chunk_tokens

    def test_no_overlap_when_last_sentence_exceeds_budget(self, chunker):
        # 600-character sentences are 150 tokens, above the 120-token budget
        sentences = [f"Long {i:03d} " + "y" * 590 + "." for i in range(12)]

        chunks = chunker.chunk(" ".join(sentences))

        assert len(chunks) == 2
        first = split_into_sentences(chunks[0].text)
        second = split_into_sentences(chunks[1].text)
        assert not set(first) & set(second)
        assert len(first) == 8

    def test_oversized_sentence_is_not_split(self, chunker):
        text = "z" * 6000

        chunks = chunker.chunk(text)

        assert len(chunks) == 1
        assert chunks[0].metadata.token_estimate == 1500

    def test_oversized_sentence_mid_document_stands_alone(self, chunker):
        lead = "Short lead sentence here."
        huge = "H" * 6000 + "."
        trail = "Trailing note."

        chunks = chunker.chunk(" ".join([lead, huge, trail]))

        assert [chunk.text for chunk in chunks] == [lead, huge, trail]
        assert [chunk.metadata.position for chunk in chunks] == [0, 1, 2]
        assert chunks[1].metadata.token_estimate == 1501

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_overlap_with_mixed_sentence_lengths(self, chunker, seed):
        rng = random.Random(seed)
        sentences = [make_varied_sentence(i, rng.randint(20, 900)) for i in range(300)]

        chunks = chunker.chunk(" ".join(sentences))

        carried = skipped = 0
        for previous, current in zip(chunks, chunks[1:]):
            previous_sentences = split_into_sentences(previous.text)
            current_sentences = split_into_sentences(current.text)
            shared = [s for s in current_sentences if s in previous_sentences]
            if estimate_tokens(previous_sentences[-1]) <= chunker.overlap_tokens:
                carried += 1
                assert shared
                assert current_sentences[:len(shared)] == previous_sentences[-len(shared):]
                assert sum(estimate_tokens(s) for s in shared) <= chunker.overlap_tokens
            else:
                skipped += 1
                assert not shared
        assert carried and skipped

    def test_final_partial_chunk_is_emitted(self, chunker):
        text = " ".join(make_sentence(i) for i in range(50))

        chunks = chunker.chunk(text)

        assert len(chunks) == 2
        assert chunks[-1].text.endswith(make_sentence(49))

    def test_section_labels_follow_headers(self):
        chunker = TextChunker({"min_chunk_tokens": 5, "max_chunk_tokens": 10, "overlap_percent": 0.0})
        text = (
            "# Intro\nAlpha beta gamma delta. Epsilon zeta eta theta.\n"
            "RESULTS\nIota kappa lambda mu."
        )

        chunks = chunker.chunk(text)

        assert [chunk.metadata.section for chunk in chunks] == ["Intro", "Intro", "RESULTS"]

    def test_describe(self, chunker):
        assert chunker.describe() == {
            "minChunkSize": 800,
            "maxChunkSize": 1200,
            "overlapPercent": 12.0,
            "overlapTokens": 120,
            "charsPerToken": 4,
        }

    @pytest.mark.parametrize("config", [
        {"min_chunk_tokens": 0},
        {"min_chunk_tokens": 900, "max_chunk_tokens": 500},
        {"overlap_percent": 1.5},
    ])
    def test_invalid_config(self, config):
        with pytest.raises(ValueError):
            TextChunker(config)
