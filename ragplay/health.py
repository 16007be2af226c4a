"""
Health report: which providers are configured and what the pipeline will use.
"""

from typing import Dict, Any

from .config import get_secret
from .ingestion.chunker import TextChunker
from .models.llm_manager import PROVIDERS
from .rag.reranker import CohereReranker
from .rag.vector_store import EMBEDDING_MODEL

CONFIGURED = "configured"
MISSING_KEY = "missing_key"


def _key_status(section: Dict[str, Any], env_var: str) -> str:
    return CONFIGURED if get_secret(section, "api_key", env_var) else MISSING_KEY


def build_health_report(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Summarize provider readiness without calling any provider.

    Args:
        config: Full application configuration

    Returns:
        Report with overall status, per-service key status, and readiness
    """
    pinecone_config = config.get("pinecone", {}) or {}
    reranker_config = config.get("reranker", {}) or {}
    llm_config = config.get("llm", {}) or {}

    provider_name = llm_config.get("default_provider", "openrouter")
    provider_section = (llm_config.get("providers") or {}).get(provider_name) or {}
    provider_class, default_model = PROVIDERS.get(provider_name, (None, "unknown"))
    llm_env_var = provider_class.env_var if provider_class else f"{provider_name.upper()}_API_KEY"

    services = {
        "pinecone": _key_status(pinecone_config, "PINECONE_API_KEY"),
        "cohere": _key_status(reranker_config, "COHERE_API_KEY"),
        provider_name: _key_status(provider_section, llm_env_var),
    }
    missing = [name for name, status in services.items() if status == MISSING_KEY]

    report: Dict[str, Any] = {
        "status": "degraded" if missing else "ok",
        "services": services,
        "configuration": {
            "vectorDb": {
                "indexName": pinecone_config.get("index_name", "rag-assessment"),
                "embeddingModel": pinecone_config.get("embedding_model", EMBEDDING_MODEL),
            },
            "reranker": CohereReranker(reranker_config).describe(),
            "llm": {
                "provider": provider_name,
                "model": provider_section.get("model", default_model),
            },
            "chunking": TextChunker(config.get("chunking", {})).describe(),
        },
        "ready": {
            "ingestion": services["pinecone"] == CONFIGURED,
            "query": services["pinecone"] == CONFIGURED,
            "rerank": services["cohere"] == CONFIGURED,
            "generation": services[provider_name] == CONFIGURED,
        },
    }
    if missing:
        report["warning"] = f"Missing API keys: {', '.join(missing)}"
    return report
