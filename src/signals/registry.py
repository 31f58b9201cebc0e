"""Planner provider registry.

Every ``PlannerProvider`` member maps to exactly one adapter class. Providers
that are declared but not yet built map to ``UnsupportedProviderAdapter``.
"""

from enum import Enum
from typing import Any, Dict, Optional, Type

from .base_adapter import BaseAdapter
from .ics_feed import IcsFeedAdapter
from .task_api import TaskApiAdapter
from .unsupported import UnsupportedProviderAdapter


class PlannerProvider(str, Enum):
    ICS_FEED = "ics_feed"
    TASK_API = "task_api"
    GOOGLE_TASKS = "google_tasks"
    MICROSOFT_TODO = "microsoft_todo"


ADAPTER_CLASSES: Dict[PlannerProvider, Type[BaseAdapter]] = {
    PlannerProvider.ICS_FEED: IcsFeedAdapter,
    PlannerProvider.TASK_API: TaskApiAdapter,
    PlannerProvider.GOOGLE_TASKS: UnsupportedProviderAdapter,
    PlannerProvider.MICROSOFT_TODO: UnsupportedProviderAdapter,
}


def build_adapter(provider_config: Dict[str, Any], settings: Optional[Dict[str, Any]] = None) -> BaseAdapter:
    """
    Instantiate the adapter for a provider config.

    Args:
        provider_config: Dict with at least 'provider'
        settings: Loaded settings dict (default: read config/holdfast.yaml)

    Returns:
        Concrete adapter instance

    Raises:
        ValueError: If the provider is not a known PlannerProvider value
    """
    provider = PlannerProvider(provider_config["provider"])
    config = {**provider_config, "provider": provider.value}
    return ADAPTER_CLASSES[provider](config, settings)


def is_supported(provider: PlannerProvider) -> bool:
    return ADAPTER_CLASSES[provider] is not UnsupportedProviderAdapter
