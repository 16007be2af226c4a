"""
Tests for configuration loading, the error taxonomy and the health report.
"""

import logging
import os

import pytest

from ragplay.config import get_secret, load_config, load_env_file, resolve_env_vars, setup_logging
from ragplay.errors import (
    ProviderError,
    QueryFailedError,
    RateLimitError,
    ValidationError,
    is_rate_limit_error,
)
from ragplay.health import build_health_report
from ragplay.rag.models import StageTimings

API_KEYS = ("PINECONE_API_KEY", "COHERE_API_KEY", "OPENROUTER_API_KEY")


class TestConfig:
    """Test .env and YAML loading."""

    def test_load_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RAGPLAY_TEST_KEY", "before")
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\nRAGPLAY_TEST_KEY = secret=value\n\nJUNK LINE\n", encoding="utf-8")

        load_env_file(str(env_file))

        assert os.environ["RAGPLAY_TEST_KEY"] == "secret=value"

    def test_missing_env_file_is_ignored(self, tmp_path):
        load_env_file(str(tmp_path / "absent.env"))

    def test_resolve_env_vars(self, monkeypatch):
        monkeypatch.setenv("RAGPLAY_HOST", "example.org")
        monkeypatch.delenv("RAGPLAY_UNSET", raising=False)

        resolved = resolve_env_vars({
            "url": "https://${RAGPLAY_HOST}/v1",
            "nested": [{"key": "${RAGPLAY_UNSET}"}],
            "count": 3,
        })

        assert resolved == {
            "url": "https://example.org/v1",
            "nested": [{"key": "${RAGPLAY_UNSET}"}],
            "count": 3,
        }

    def test_load_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PINECONE_API_KEY", "pc-key")
        path = tmp_path / "config.yaml"
        path.write_text("pinecone:\n  api_key: ${PINECONE_API_KEY}\n  index_name: test\n", encoding="utf-8")

        config = load_config(str(path))

        assert config["pinecone"] == {"api_key": "pc-key", "index_name": "test"}

    def test_load_config_requires_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_config(str(path))

    def test_empty_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(str(path)) == {}

    def test_get_secret(self, monkeypatch):
        monkeypatch.setenv("RAGPLAY_SECRET", "from-env")

        assert get_secret({"api_key": "from-config"}, "api_key", "RAGPLAY_SECRET") == "from-config"
        assert get_secret({}, "api_key", "RAGPLAY_SECRET") == "from-env"
        assert get_secret({"api_key": "${RAGPLAY_MISSING}"}, "api_key", "RAGPLAY_MISSING") is None

    def test_setup_logging(self, tmp_path):
        log_file = tmp_path / "logs" / "app.log"

        setup_logging({"logging": {"level": "debug", "file": str(log_file)}})
        logging.getLogger("ragplay.test").debug("hello log")

        assert logging.getLogger().level == logging.DEBUG
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello log" in log_file.read_text(encoding="utf-8")


class TestErrors:
    """Test error payloads and rate-limit detection."""

    def test_validation_payload(self):
        assert ValidationError("Please provide at least 3 characters").to_dict() == {
            "success": False,
            "error": "Invalid input",
            "message": "Please provide at least 3 characters",
        }

    def test_rate_limit_payload(self):
        error = RateLimitError("quota exhausted")

        assert error.status_code == 429
        assert error.to_dict()["isRateLimit"] is True
        assert error.to_dict()["error"] == "Rate limit exceeded"

    def test_query_failed_keeps_partial_timing(self):
        error = QueryFailedError("boom", timing=StageTimings(retrieval_ms=12.3456, total_ms=13.0))

        assert error.to_dict() == {
            "success": False,
            "error": "Query failed",
            "message": "boom",
            "isRateLimit": False,
            "timing": {"retrievalMs": 12.35, "totalMs": 13.0},
        }

    @pytest.mark.parametrize("error, expected", [
        (RateLimitError("x"), True),
        (ProviderError("x", status_code=429), True),
        (Exception("Error 429: too many requests"), True),
        (Exception("RESOURCE_EXHAUSTED"), True),
        (Exception("You exceeded your current quota"), True),
        (Exception("Max tokens per minute reached"), True),
        (ProviderError("x", status_code=500), False),
        (Exception("connection refused"), False),
    ])
    def test_is_rate_limit_error(self, error, expected):
        assert is_rate_limit_error(error) is expected


class TestHealthReport:
    """Test the provider readiness summary."""

    @pytest.fixture
    def config(self):
        return {
            "pinecone": {"api_key": "${PINECONE_API_KEY}", "index_name": "rag-assessment"},
            "reranker": {"api_key": "${COHERE_API_KEY}"},
            "llm": {
                "default_provider": "openrouter",
                "providers": {"openrouter": {"api_key": "${OPENROUTER_API_KEY}"}},
            },
        }

    def test_all_keys_missing(self, config, monkeypatch):
        for key in API_KEYS:
            monkeypatch.delenv(key, raising=False)

        report = build_health_report(config)

        assert report["status"] == "degraded"
        assert report["services"] == {
            "pinecone": "missing_key",
            "cohere": "missing_key",
            "openrouter": "missing_key",
        }
        assert report["warning"] == "Missing API keys: pinecone, cohere, openrouter"
        assert report["ready"]["query"] is False

    def test_all_keys_configured(self, config, monkeypatch):
        for key in API_KEYS:
            monkeypatch.setenv(key, f"{key.lower()}-value")

        report = build_health_report(config)

        assert report["status"] == "ok"
        assert "warning" not in report
        assert all(report["ready"].values())
        assert report["configuration"]["llm"] == {
            "provider": "openrouter",
            "model": "xiaomi/mimo-v2-flash:free",
        }
        assert report["configuration"]["chunking"]["maxChunkSize"] == 1200
        assert report["configuration"]["reranker"]["model"] == "rerank-english-v3.0"
