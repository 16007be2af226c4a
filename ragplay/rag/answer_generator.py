"""
Grounded answer generation with inline bracket citations.

Prompt assembly and citation parsing are plain functions so each can be
exercised without a provider.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, Any, List

from ..errors import GenerationTimeoutError, ProviderError, is_rate_limit_error
from ..models.llm_manager import LLMManager
from .models import (
    DEFAULT_SECTION,
    Citation,
    CostEstimate,
    GenerationError,
    GenerationResult,
    RankedChunk,
    TokenUsage,
    estimate_tokens,
)

logger = logging.getLogger(__name__)

CITATION_MARKER = re.compile(r"\[(\d+)\]")
CONTEXT_DELIMITER = "\n\n---\n\n"
PREVIEW_LENGTH = 200

NO_CONTEXT_ANSWER = (
    "I don't have any documents to search through. "
    "Please upload some text first using the upload feature."
)
EMPTY_COMPLETION_ANSWER = "No response generated"
DEGRADED_ANSWERS = {
    GenerationError.TIMEOUT: "The LLM service is taking too long to respond. Please try again in a moment.",
    GenerationError.RATE_LIMIT: "The LLM service is currently rate limited. Please wait a moment and try again.",
    GenerationError.SERVICE_UNAVAILABLE: "The LLM service is temporarily unavailable. Please try again later.",
}

PROMPT_TEMPLATE = """You are a helpful assistant that answers questions based on the provided context.
Your task is to provide accurate, well-structured answers using ONLY the information from the context below.

IMPORTANT RULES:
1. Use inline citations like [1], [2], etc. to reference the source of your information
2. If the context doesn't contain relevant information, say "I don't have enough information to answer this question based on the provided documents."
3. Be concise but comprehensive
4. If multiple sources support the same point, cite all of them (e.g., [1][2])
5. Do not make up information that isn't in the context

CONTEXT:
{context}

---

USER QUESTION: {query}

Please provide a well-structured answer with inline citations:"""


@dataclass(frozen=True)
class ContextBlock:
    """One numbered passage as it appears in the prompt."""
    index: int
    rendered: str


def build_context_blocks(chunks: List[RankedChunk]) -> List[ContextBlock]:
    """Render chunks as ``[n] Source: title | Section: section`` blocks, 1-based."""
    blocks = []
    for index, chunk in enumerate(chunks, start=1):
        title = chunk.metadata.title or "Document"
        section = chunk.metadata.section or DEFAULT_SECTION
        blocks.append(ContextBlock(
            index=index,
            rendered=f"[{index}] Source: {title} | Section: {section}\n{chunk.text}",
        ))
    return blocks


def build_rag_prompt(query: str, chunks: List[RankedChunk]) -> str:
    """Build the grounded prompt from the reranked chunks."""
    context = CONTEXT_DELIMITER.join(block.rendered for block in build_context_blocks(chunks))
    return PROMPT_TEMPLATE.format(context=context, query=query)


def extract_citation_numbers(answer: str, source_count: int) -> List[int]:
    """Distinct in-range marker numbers, in order of first appearance."""
    numbers: List[int] = []
    for match in CITATION_MARKER.finditer(answer):
        number = int(match.group(1))
        if 1 <= number <= source_count and number not in numbers:
            numbers.append(number)
    return numbers


def strip_invalid_markers(answer: str, source_count: int) -> str:
    """Remove markers that point past the supplied sources."""
    def keep_in_range(match):
        number = int(match.group(1))
        return match.group(0) if 1 <= number <= source_count else ""

    return CITATION_MARKER.sub(keep_in_range, answer)


def degraded_result(error: GenerationError, model: str, input_tokens: int,
                    duration_ms: float, detail: str = "") -> GenerationResult:
    """Answer payload for a generation that fell back to a canned message."""
    return GenerationResult(
        answer=DEGRADED_ANSWERS.get(error, f"Unable to generate answer: {detail}"),
        citations=[],
        tokens_used=TokenUsage(input=input_tokens, output=0),
        model=model,
        duration_ms=duration_ms,
        error=error,
    )


def map_citations(numbers: List[int], chunks: List[RankedChunk],
                  preview_length: int = PREVIEW_LENGTH) -> List[Citation]:
    """Resolve citation numbers to previews of their chunks."""
    citations = []
    for number in numbers:
        chunk = chunks[number - 1]
        preview = chunk.text[:preview_length]
        if len(chunk.text) > preview_length:
            preview += "..."
        citations.append(Citation(
            number=number,
            text=preview,
            source=chunk.metadata.title or "Document",
            section=chunk.metadata.section or DEFAULT_SECTION,
        ))
    return citations


class AnswerGenerator:
    """Builds the prompt, calls the LLM and extracts citations.

    ``generate`` never raises: provider failures come back as a degraded
    result carrying an ``error`` tag and a displayable message.
    """

    def __init__(self, config: Dict[str, Any], llm_manager: LLMManager):
        self.config = config
        self.llm_manager = llm_manager
        self.timeout = config.get("timeout", 60.0)
        self.preview_length = config.get("citation_preview_length", PREVIEW_LENGTH)

    async def generate(self, query: str, ranked_chunks: List[RankedChunk]) -> GenerationResult:
        start = time.perf_counter()
        model = self.llm_manager.model_name()

        if not ranked_chunks:
            return GenerationResult(
                answer=NO_CONTEXT_ANSWER,
                citations=[],
                tokens_used=TokenUsage(input=0, output=0),
                model=model,
                duration_ms=(time.perf_counter() - start) * 1000,
                no_context=True,
            )

        prompt = build_rag_prompt(query, ranked_chunks)
        input_tokens = estimate_tokens(prompt)

        try:
            raw_answer = await asyncio.wait_for(self.llm_manager.generate(prompt), timeout=self.timeout)
        except Exception as e:
            error = self._classify(e)
            logger.error(f"Answer generation failed ({error.value}): {e}")
            return degraded_result(
                error, model, input_tokens, (time.perf_counter() - start) * 1000, detail=str(e)
            )

        answer = strip_invalid_markers(raw_answer or "", len(ranked_chunks)).strip() or EMPTY_COMPLETION_ANSWER
        numbers = extract_citation_numbers(answer, len(ranked_chunks))

        return GenerationResult(
            answer=answer,
            citations=map_citations(numbers, ranked_chunks, self.preview_length),
            tokens_used=TokenUsage(input=input_tokens, output=estimate_tokens(answer)),
            model=model,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    @staticmethod
    def _classify(error: Exception) -> GenerationError:
        if isinstance(error, (asyncio.TimeoutError, GenerationTimeoutError)):
            return GenerationError.TIMEOUT
        if is_rate_limit_error(error):
            return GenerationError.RATE_LIMIT
        if isinstance(error, ProviderError) and error.status_code and error.status_code >= 500:
            return GenerationError.SERVICE_UNAVAILABLE
        return GenerationError.GENERATION_ERROR

    def estimate_cost(self, tokens: TokenUsage) -> CostEstimate:
        """Cost from the provider's per-million pricing; all-zero for free models."""
        pricing = self.llm_manager.pricing()
        return CostEstimate(
            input_cost=tokens.input * pricing["input_per_million"] / 1_000_000,
            output_cost=tokens.output * pricing["output_per_million"] / 1_000_000,
        )
