"""
Error taxonomy shared by the ingestion and query pipelines.
"""

from typing import Dict, Any, Optional

RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "quota", "max tokens per minute")


class RAGPlaygroundError(Exception):
    """Base class for all errors raised by the system."""

    error_label = "Request failed"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Render the error as a structured response payload."""
        return {
            "success": False,
            "error": self.error_label,
            "message": self.message,
        }


class ValidationError(RAGPlaygroundError):
    """Malformed or too-short input, rejected before any provider call."""

    error_label = "Invalid input"


class ProviderError(RAGPlaygroundError):
    """Generic upstream failure: network, 5xx, malformed response."""

    error_label = "Provider error"
    is_rate_limit = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["isRateLimit"] = self.is_rate_limit
        return payload


class RateLimitError(ProviderError):
    """Provider quota exhaustion; callers should retry later or send less."""

    error_label = "Rate limit exceeded"
    is_rate_limit = True

    def __init__(self, message: str, status_code: Optional[int] = 429):
        super().__init__(message, status_code=status_code)


class GenerationTimeoutError(ProviderError):
    """The generation provider did not answer within the bounded wait."""

    error_label = "Generation timed out"


class QueryFailedError(RAGPlaygroundError):
    """A retrieval-stage failure that aborts the whole query."""

    error_label = "Query failed"

    def __init__(self, message: str, timing=None, is_rate_limit: bool = False):
        super().__init__(message)
        self.timing = timing
        self.is_rate_limit = is_rate_limit

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.is_rate_limit:
            payload["error"] = RateLimitError.error_label
        payload["isRateLimit"] = self.is_rate_limit
        if self.timing is not None:
            payload["timing"] = self.timing.to_dict()
        return payload


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether a provider exception signals quota exhaustion."""
    if getattr(error, "is_rate_limit", False):
        return True
    for attr in ("status", "status_code", "http_status"):
        if getattr(error, attr, None) == 429:
            return True
    text = str(error).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)
