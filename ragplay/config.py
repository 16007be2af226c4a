"""
Configuration loading: .env file, YAML config with ${VAR} references, logging.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def load_env_file(env_path: str = ".env") -> None:
    """Load KEY=VALUE lines from a .env file into the environment."""
    env_file = Path(env_path)
    if not env_file.exists():
        return
    with open(env_file, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ[key.strip()] = value.strip()


def resolve_env_vars(value: Any) -> Any:
    """Resolve ${VAR_NAME} references recursively. Unset variables stay verbatim."""
    if isinstance(value, str) and "${" in value:
        def replace_env_var(match):
            return os.getenv(match.group(1), match.group(0))

        return ENV_REFERENCE.sub(replace_env_var, value)
    if isinstance(value, dict):
        return {key: resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    return value


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """Load the YAML configuration and resolve environment references."""
    with open(config_path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")
    return resolve_env_vars(config)


def get_secret(config: Dict[str, Any], key: str, env_var: str) -> Optional[str]:
    """Read an API key from config, falling back to the environment.

    Unresolved ``${VAR}`` placeholders count as missing.
    """
    value = config.get(key)
    if not value or ENV_REFERENCE.search(str(value)):
        value = os.getenv(env_var)
    if not value or ENV_REFERENCE.search(value):
        return None
    return value


def setup_logging(config: Dict[str, Any]) -> None:
    """Setup logging configuration."""
    log_config = config.get("logging", {}) or {}
    log_level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)
    log_format = log_config.get("format", DEFAULT_LOG_FORMAT)

    handlers = [logging.StreamHandler()]
    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=log_level, format=log_format, handlers=handlers, force=True)
