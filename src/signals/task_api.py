"""Token-authenticated task API reader for planner load.

Expects a JSON array of task objects:

    [{"content": "...", "due": {"date": "2025-03-10", "datetime": "2025-03-10T14:00:00Z"},
      "is_completed": false}, ...]

``due.datetime`` is preferred over ``due.date``; tasks without a due are ignored.
"""

import logging
from datetime import date, datetime, time, tzinfo
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.config.secrets import TASKS_TOKEN_ENV, MissingAPIKeyError, get_tasks_api_token

from .base_adapter import AdapterError, BaseAdapter, PlannerSignal, TaskTally

logger = logging.getLogger(__name__)

_retry = Retry(total=1, allowed_methods=["GET"], backoff_factor=1, status_forcelist=[502, 503, 504])
_session = requests.Session()
_session.mount("https://", HTTPAdapter(max_retries=_retry))
_session.mount("http://", HTTPAdapter(max_retries=_retry))

AUTH_FAILURE_STATUSES = {401, 403}


class TaskApiAdapter(BaseAdapter):
    """Count remote tasks due inside the contract window."""

    def __init__(self, provider_config: Dict[str, Any], settings: Optional[Dict[str, Any]] = None):
        super().__init__(provider_config, settings)
        self.token = provider_config.get('token')
        self.token_env = provider_config.get('token_env', TASKS_TOKEN_ENV)

    def _resolve_token(self) -> str:
        if self.token:
            return self.token
        try:
            return get_tasks_api_token(self.token_env)
        except MissingAPIKeyError as e:
            raise AdapterError(self.provider, str(e), e, retryable=False) from e

    def _fetch_impl(self, window_start: datetime, window_end: datetime, now: datetime) -> PlannerSignal:
        if not self.url:
            raise AdapterError(self.provider, "no task endpoint configured", retryable=False)

        headers = {
            "Authorization": f"Bearer {self._resolve_token()}",
            "Accept": "application/json",
        }
        try:
            response = _session.get(self.url, headers=headers, timeout=self.request_timeout)
        except requests.RequestException as e:
            raise AdapterError(self.provider, f"task request failed: {e}", e) from e

        if not response.ok:
            raise AdapterError(
                self.provider,
                f"task endpoint returned HTTP {response.status_code}",
                retryable=response.status_code not in AUTH_FAILURE_STATUSES,
            )

        try:
            tasks = response.json()
        except ValueError as e:
            raise AdapterError(self.provider, f"task response is not JSON: {e}", e) from e

        if not isinstance(tasks, list):
            raise AdapterError(self.provider, "task response is not a JSON array")

        return summarize_tasks(tasks, window_start, window_end, now, self.tz)


def summarize_tasks(
    tasks: List[Any],
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    local_tz: tzinfo,
) -> PlannerSignal:
    """Aggregate task objects due in [window_start, window_end] into planner counts."""
    tally = TaskTally(now)

    for task in tasks:
        if not isinstance(task, dict):
            continue
        due_at = task_due_at(task, local_tz)
        if due_at is None or due_at < window_start or due_at > window_end:
            continue
        completed = bool(task.get("is_completed") or task.get("completed"))
        tally.add(due_at, completed)

    return tally.to_signal()


def task_due_at(task: Dict[str, Any], local_tz: tzinfo) -> Optional[datetime]:
    """Due timestamp of a task; date-only dues are local midnight."""
    due = task.get("due")
    if not isinstance(due, dict):
        return None

    raw_datetime = due.get("datetime")
    if raw_datetime:
        try:
            parsed = datetime.fromisoformat(str(raw_datetime).replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=local_tz)

    raw_date = due.get("date")
    if raw_date:
        try:
            return datetime.combine(date.fromisoformat(str(raw_date)[:10]), time(0, 0), tzinfo=local_tz)
        except ValueError:
            return None

    return None
