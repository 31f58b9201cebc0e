"""
Runtime settings loaded from config/holdfast.yaml.

Every accessor falls back to a module default, so the file is optional.

Usage:
    from src.config.settings import get_adapter_settings, get_polling_intervals

    timeout = get_adapter_settings()["timeout_seconds"]
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "config/holdfast.yaml"

# Adapter defaults (can be overridden by config/holdfast.yaml)
DEFAULT_ADAPTER_TIMEOUT_SECONDS = 12
DEFAULT_REQUEST_TIMEOUT = (5, 12)
DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_BACKOFF_SECONDS = 1
DEFAULT_BACKOFF_MULTIPLIER = 2

# Planner poll cadence; geospatial and weather statuses are pushed in by callers
DEFAULT_PLANNER_POLL_SECONDS = 300

DEFAULT_ASSISTANT_BASE_URL = "http://127.0.0.1:8081"
DEFAULT_ASSISTANT_TIMEOUT_SECONDS = 20


def load_settings(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load settings from config/holdfast.yaml.

    Args:
        path: Explicit settings file. When omitted, the working directory and
            then the repository root are searched.

    Returns:
        Settings dict or empty dict if no file was found or it failed to parse
    """
    if path is not None:
        config_paths = [path]
    else:
        config_paths = [
            SETTINGS_FILENAME,
            os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), SETTINGS_FILENAME),
        ]

    for candidate in config_paths:
        if os.path.exists(candidate):
            try:
                with open(candidate, 'r') as f:
                    return yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load settings from {candidate}: {e}")

    return {}


def _section(settings: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    if settings is None:
        settings = load_settings()
    section = settings.get(name) or {}
    return section if isinstance(section, dict) else {}


def get_adapter_settings(settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get adapter timeout and retry configuration.

    Returns:
        Dict with timeout_seconds, request_timeout (connect, read) and retry
        (max_retries, initial_backoff_seconds, backoff_multiplier)
    """
    adapters = _section(settings, "adapters")
    retry = adapters.get("retry") or {}
    request_timeout = adapters.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)

    return {
        "timeout_seconds": adapters.get("timeout_seconds", DEFAULT_ADAPTER_TIMEOUT_SECONDS),
        "request_timeout": as_timeout(request_timeout),
        "retry": {
            "max_retries": retry.get("max_retries", DEFAULT_MAX_RETRIES),
            "initial_backoff_seconds": retry.get("initial_backoff_seconds", DEFAULT_INITIAL_BACKOFF_SECONDS),
            "backoff_multiplier": retry.get("backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER),
        },
    }


def get_polling_intervals(settings: Optional[Dict[str, Any]] = None) -> Dict[str, float]:
    """Poll interval in seconds per polled coupling (only the planner is polled here)."""
    polling = _section(settings, "polling")
    return {
        "planner": float(polling.get("planner_seconds", DEFAULT_PLANNER_POLL_SECONDS)),
    }


def get_assistant_settings(settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    assistant = _section(settings, "assistant")
    return {
        "base_url": assistant.get("base_url", DEFAULT_ASSISTANT_BASE_URL),
        "timeout_seconds": assistant.get("timeout_seconds", DEFAULT_ASSISTANT_TIMEOUT_SECONDS),
    }


def get_logging_level(settings: Optional[Dict[str, Any]] = None) -> str:
    return str(_section(settings, "logging").get("level", "INFO"))


def as_timeout(value: Any) -> Tuple[float, float]:
    # A single number applies to both connect and read
    if isinstance(value, (int, float)):
        return (float(value), float(value))
    connect, read = value
    return (float(connect), float(read))
