"""
LLM Manager for handling different language model providers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

import anthropic
import openai

from ..config import get_secret
from ..errors import GenerationTimeoutError, ProviderError, RateLimitError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL = "xiaomi/mimo-v2-flash:free"


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: str
    model: str
    temperature: float = 0.1
    max_tokens: int = 2000
    timeout: float = 60.0
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    input_cost_per_million: float = 0.0
    output_cost_per_million: float = 0.0

    @classmethod
    def from_dict(cls, provider: str, data: Dict[str, Any], env_var: str, default_model: str,
                  timeout: float = 60.0) -> "LLMConfig":
        pricing = data.get("pricing", {}) or {}
        return cls(
            provider=provider,
            model=data.get("model", default_model),
            temperature=data.get("temperature", 0.1),
            max_tokens=data.get("max_tokens", 2000),
            timeout=data.get("timeout", timeout),
            api_key=get_secret(data, "api_key", env_var),
            base_url=data.get("base_url"),
            input_cost_per_million=pricing.get("input_per_million", 0.0),
            output_cost_per_million=pricing.get("output_per_million", 0.0),
        )


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    description = "Language model provider"

    def __init__(self, config: LLMConfig):
        self.config = config

    @abstractmethod
    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using the LLM. Returns an empty string when nothing came back."""
        pass

    def describe(self) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "provider": self.config.provider,
            "description": self.description,
        }


class OpenAIProvider(LLMProvider):
    """OpenAI provider implementation."""

    description = "OpenAI chat completions"
    env_var = "OPENAI_API_KEY"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        if not config.api_key:
            raise ProviderError(f"{self.env_var} is not set")
        self.client = openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
            default_headers=self._default_headers(),
        )

    def _default_headers(self) -> Optional[Dict[str, str]]:
        return None

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text with the chat completions API."""
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature),
            )
        except openai.APITimeoutError as e:
            raise GenerationTimeoutError("Request timed out. The LLM service is taking too long to respond.") from e
        except openai.RateLimitError as e:
            raise RateLimitError(f"{self.config.provider} rate limit: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(f"{self.config.provider} API error: {e.status_code}", status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            raise ProviderError(f"Network error connecting to LLM service: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter through its OpenAI-compatible endpoint."""

    description = "Free model via OpenRouter for RAG applications"
    env_var = "OPENROUTER_API_KEY"

    def __init__(self, config: LLMConfig):
        config.base_url = config.base_url or OPENROUTER_BASE_URL
        super().__init__(config)

    def _default_headers(self) -> Optional[Dict[str, str]]:
        return {"X-Title": "RAG Playground"}


class AnthropicProvider(LLMProvider):
    """Anthropic provider implementation."""

    description = "Anthropic messages API"
    env_var = "ANTHROPIC_API_KEY"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        if not config.api_key:
            raise ProviderError(f"{self.env_var} is not set")
        self.client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            timeout=config.timeout,
            max_retries=0,
        )

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using Anthropic."""
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature),
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise GenerationTimeoutError("Request timed out. The LLM service is taking too long to respond.") from e
        except anthropic.RateLimitError as e:
            raise RateLimitError(f"anthropic rate limit: {e}") from e
        except anthropic.APIStatusError as e:
            raise ProviderError(f"anthropic API error: {e.status_code}", status_code=e.status_code) from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"Network error connecting to LLM service: {e}") from e

        return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")


PROVIDERS = {
    "openrouter": (OpenRouterProvider, OPENROUTER_DEFAULT_MODEL),
    "openai": (OpenAIProvider, "gpt-4o-mini"),
    "anthropic": (AnthropicProvider, "claude-3-5-haiku-latest"),
}


class LLMManager:
    """Manager for handling different LLM providers."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.default_provider = config.get("default_provider", "openrouter")
        self.timeout = config.get("timeout", 60.0)
        self.providers: Dict[str, LLMProvider] = {}
        self.connected = False

    def connect(self) -> None:
        """Initialize configured providers. Safe to call repeatedly."""
        if self.connected:
            return

        provider_configs = self.config.get("providers") or {self.default_provider: {}}
        for name, provider_config in provider_configs.items():
            if name not in PROVIDERS:
                logger.warning(f"Unknown LLM provider '{name}' ignored")
                continue
            provider_class, default_model = PROVIDERS[name]
            llm_config = LLMConfig.from_dict(
                name, provider_config or {}, provider_class.env_var, default_model, self.timeout
            )
            try:
                self.providers[name] = provider_class(llm_config)
                logger.info(f"{name} provider initialized ({llm_config.model})")
            except ProviderError as e:
                logger.warning(f"Failed to initialize {name} provider: {e}")

        self.connected = True

    def get_provider(self, provider: Optional[str] = None) -> LLMProvider:
        self.connect()
        provider_name = provider or self.default_provider
        if provider_name not in self.providers:
            raise ProviderError(f"Provider {provider_name} not available")
        return self.providers[provider_name]

    async def generate(self, prompt: str, provider: Optional[str] = None, **kwargs) -> str:
        """Generate text using specified or default provider."""
        return await self.get_provider(provider).generate(prompt, **kwargs)

    def get_available_providers(self) -> List[str]:
        """Get list of available providers."""
        self.connect()
        return list(self.providers.keys())

    def model_name(self, provider: Optional[str] = None) -> str:
        """Model id of a provider, read from config so it works before connecting."""
        provider_name = provider or self.default_provider
        if provider_name in self.providers:
            return self.providers[provider_name].config.model
        provider_config = (self.config.get("providers") or {}).get(provider_name) or {}
        default_model = PROVIDERS.get(provider_name, (None, "unknown"))[1]
        return provider_config.get("model", default_model)

    def pricing(self, provider: Optional[str] = None) -> Dict[str, float]:
        """Per-million-token prices; zero for free models."""
        provider_name = provider or self.default_provider
        provider_config = (self.config.get("providers") or {}).get(provider_name) or {}
        pricing = provider_config.get("pricing", {}) or {}
        return {
            "input_per_million": float(pricing.get("input_per_million", 0.0)),
            "output_per_million": float(pricing.get("output_per_million", 0.0)),
        }

    def describe(self) -> Dict[str, Any]:
        provider_name = self.default_provider
        if provider_name in self.providers:
            return self.providers[provider_name].describe()
        provider_class = PROVIDERS.get(provider_name, (LLMProvider, None))[0]
        return {
            "model": self.model_name(),
            "provider": provider_name,
            "description": provider_class.description,
        }
