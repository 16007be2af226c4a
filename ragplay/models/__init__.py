"""
LLM abstraction layer for answer generation.
"""

from .llm_manager import LLMManager, LLMProvider, OpenAIProvider, OpenRouterProvider, AnthropicProvider

__all__ = ["LLMManager", "LLMProvider", "OpenAIProvider", "OpenRouterProvider", "AnthropicProvider"]
