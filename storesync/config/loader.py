"""
Configuration loader for the storesync jobs.

Loads configuration from a YAML file and environment variables with
nested key access.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "app.yaml"

# Global configuration cache
_config_cache: dict[str, Any] | None = None


def load_config(config_path: str | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file with environment variable support.

    The path is taken from the argument, then STORESYNC_CONFIG, then the
    bundled config/app.yaml. An explicitly requested file must exist; a
    missing bundled file yields an empty configuration so every cfg() call
    falls back to its default.
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    # Load environment variables
    load_dotenv()

    requested = config_path or os.getenv("STORESYNC_CONFIG")
    config_file = Path(requested) if requested else DEFAULT_CONFIG_PATH

    if not config_file.exists():
        if requested:
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
        logger.debug(f"No configuration file at {config_file}, using defaults")
        _config_cache = {}
        return _config_cache

    with open(config_file) as f:
        config = yaml.safe_load(f) or {}

    _config_cache = config
    return config


def cfg(key: str, default: Any = None) -> Any:
    """
    Get configuration value using dot notation.

    Args:
        key: Dot-separated key path (e.g., "shopify.page_size")
        default: Default value if key is not found or is null

    Examples:
        cfg("global.log_level", "INFO")
        cfg("jobs.order_sync.lookback_hours", 24)
    """
    config = load_config()

    value: Any = config
    try:
        for k in key.split("."):
            value = value[k]
    except (KeyError, TypeError):
        return default

    return default if value is None else value


def env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_required_env(key: str) -> str:
    """
    Get required environment variable or raise error.

    Raises:
        ValueError: If environment variable is not set
    """
    value = env(key)
    if not value:
        raise ValueError(f"{key} environment variable is required")
    return value


def get_database_url() -> str:
    """Get database URL from environment."""
    load_dotenv()
    return get_required_env("DATABASE_URL")


def is_job_enabled(job: str) -> bool:
    """Check if a job is enabled; jobs are enabled unless configured otherwise."""
    return bool(cfg(f"jobs.{job}.enabled", True))


def get_deadline_seconds(job: str) -> float | None:
    """Get the wall-clock budget for a job run, or None for no deadline."""
    value = cfg(f"jobs.{job}.deadline_seconds")
    return float(value) if value is not None else None


def reload_config() -> None:
    """Force reload of configuration cache."""
    global _config_cache
    _config_cache = None
