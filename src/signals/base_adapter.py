"""Abstract base class for planner signal adapters with retry logic."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from src.config.settings import as_timeout, get_adapter_settings

logger = logging.getLogger(__name__)

DUE_SOON_WINDOW = timedelta(hours=24)


class AdapterError(Exception):
    """Exception raised when a signal fetch fails (transport, auth, parse, timeout)."""
    def __init__(
        self,
        provider: str,
        message: str,
        original_error: Optional[Exception] = None,
        retryable: bool = True,
    ):
        self.provider = provider
        self.message = message
        self.original_error = original_error
        self.retryable = retryable
        super().__init__(f"{provider}: {message}")


@dataclass(frozen=True)
class PlannerSignal:
    """Aggregate task counts for the window [now, boundary]. Replaced wholesale per fetch."""
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    due_next_24h: int
    last_updated_at: datetime

    @classmethod
    def empty(cls, at: datetime) -> "PlannerSignal":
        return cls(
            total_tasks=0,
            completed_tasks=0,
            overdue_tasks=0,
            due_next_24h=0,
            last_updated_at=at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "overdue_tasks": self.overdue_tasks,
            "due_next_24h": self.due_next_24h,
            "last_updated_at": self.last_updated_at.isoformat(),
        }


class TaskTally:
    """Accumulates per-task classifications into a PlannerSignal."""

    def __init__(self, now: datetime):
        self.now = now
        self.total = 0
        self.completed = 0
        self.overdue = 0
        self.due_soon = 0

    def add(self, due_at: datetime, completed: bool) -> None:
        self.total += 1
        if completed:
            self.completed += 1
        elif due_at < self.now:
            self.overdue += 1
        elif due_at <= self.now + DUE_SOON_WINDOW:
            self.due_soon += 1

    def to_signal(self) -> PlannerSignal:
        return PlannerSignal(
            total_tasks=self.total,
            completed_tasks=self.completed,
            overdue_tasks=self.overdue,
            due_next_24h=self.due_soon,
            last_updated_at=self.now,
        )


class BaseAdapter(ABC):
    """Abstract base for all planner adapters with built-in retry logic."""

    def __init__(self, provider_config: Dict[str, Any], settings: Optional[Dict[str, Any]] = None):
        self.provider = provider_config['provider']
        self.name = provider_config.get('name', self.provider)
        self.url = provider_config.get('url')
        self.config = provider_config

        settings = get_adapter_settings(settings)
        retry = {**settings['retry'], **(provider_config.get('retry') or {})}
        self.max_retries = max(1, int(retry['max_retries']))
        self.initial_backoff_seconds = retry['initial_backoff_seconds']
        self.backoff_multiplier = retry['backoff_multiplier']
        self.request_timeout = as_timeout(provider_config.get('request_timeout', settings['request_timeout']))
        # Local and date-only timestamps are read in this zone
        tz_name = provider_config.get('tz')
        self.tz = ZoneInfo(tz_name) if tz_name else timezone.utc

    @abstractmethod
    def _fetch_impl(self, window_start: datetime, window_end: datetime, now: datetime) -> PlannerSignal:
        """
        Internal fetch implementation - to be overridden by subclasses.

        Args:
            window_start: Earliest task timestamp to count
            window_end: Latest task timestamp to count (the contract boundary)
            now: Reference time for overdue / due-soon classification

        Returns:
            PlannerSignal for the window

        Raises:
            AdapterError on fetch failure
        """
        pass

    def fetch_signal(
        self,
        window_start: datetime,
        window_end: datetime,
        now: Optional[datetime] = None,
    ) -> PlannerSignal:
        """
        Fetch with automatic retries and exponential backoff.

        Args:
            window_start: Earliest task timestamp to count
            window_end: Latest task timestamp to count
            now: Reference time (default: current UTC time)

        Returns:
            PlannerSignal on success

        Raises:
            AdapterError: After the final attempt fails, or immediately for
                non-retryable failures (authentication, missing token)
        """
        now = now or datetime.now(timezone.utc)
        last_error: Optional[AdapterError] = None
        backoff = self.initial_backoff_seconds

        for attempt in range(1, self.max_retries + 1):
            try:
                return self._fetch_impl(window_start, window_end, now)
            except AdapterError as e:
                last_error = e
            except Exception as e:  # anything else from a provider is a fetch failure
                last_error = AdapterError(self.provider, f"unexpected failure: {e}", e)

            if not last_error.retryable:
                logger.error(f"Non-retryable failure for {self.provider}: {last_error.message}")
                raise last_error

            if attempt < self.max_retries:
                logger.warning(f"Retry {attempt}/{self.max_retries} for {self.provider} in {backoff}s: {last_error.message}")
                time.sleep(backoff)
                backoff *= self.backoff_multiplier
            else:
                logger.error(f"Failed after {self.max_retries} attempts for {self.provider}: {last_error.message}")

        raise last_error
