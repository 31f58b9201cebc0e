"""Placeholder adapter for planner providers that are declared but not built."""

from datetime import datetime

from .base_adapter import AdapterError, BaseAdapter, PlannerSignal


class UnsupportedProviderAdapter(BaseAdapter):
    """Always fails, so a coupling to this provider reports its real state."""

    def _fetch_impl(self, window_start: datetime, window_end: datetime, now: datetime) -> PlannerSignal:
        raise AdapterError(self.provider, "provider not supported yet", retryable=False)
