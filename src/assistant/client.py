"""
HTTP client for the assistant collaborator.

POSTs ``{message, response_style, response_length[, mission_id]}`` to
``<base_url>/assistant_chat`` and returns the reply text. Replies are shown
to the user as-is; nothing here feeds back into contract state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.config.settings import get_assistant_settings

logger = logging.getLogger(__name__)

_retry = Retry(total=1, allowed_methods=["POST"], backoff_factor=1, status_forcelist=[502, 503, 504])
_session = requests.Session()
_session.mount("https://", HTTPAdapter(max_retries=_retry))
_session.mount("http://", HTTPAdapter(max_retries=_retry))

CHAT_PATH = "/assistant_chat"
RESPONSE_STYLES = ("tactical", "detailed")
RESPONSE_LENGTHS = ("short", "medium", "long")


class AssistantError(Exception):
    """Raised when the assistant cannot be reached or returns no usable reply."""
    pass


@dataclass(frozen=True)
class AssistantReply:
    reply: str
    provider: str = "core"
    model: str = "unknown"

    @property
    def meta(self) -> str:
        return f"{self.provider} · {self.model}"


def sanitize_base_url(value: str) -> str:
    """
    Reduce a base URL to scheme://host[:port].

    Raises:
        AssistantError: If the URL is blank, unparsable or not http(s)
    """
    trimmed = (value or "").strip()
    if not trimmed:
        raise AssistantError("Assistant URL is required.")
    try:
        parts = urlsplit(trimmed)
    except ValueError as e:
        raise AssistantError("Assistant URL must be a valid http(s) URL.") from e
    if parts.scheme not in ("http", "https"):
        raise AssistantError("Assistant URL must use http or https.")
    if not parts.netloc:
        raise AssistantError("Assistant URL must be a valid http(s) URL.")
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if isinstance(payload, dict) and isinstance(payload.get("error"), str) and payload["error"].strip():
        return payload["error"]
    return f"Assistant request failed ({response.status_code})."


class AssistantClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        settings: Optional[Dict[str, Any]] = None,
    ):
        settings = get_assistant_settings(settings)
        self.base_url = sanitize_base_url(base_url or settings["base_url"])
        self.timeout_seconds = timeout_seconds or settings["timeout_seconds"]

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = _session.post(self.base_url + CHAT_PATH, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise AssistantError(f"Assistant unreachable: {e}") from e
        if not response.ok:
            raise AssistantError(_error_detail(response))
        try:
            body = response.json()
        except ValueError as e:
            raise AssistantError("Assistant returned a non-JSON response.") from e
        if not isinstance(body, dict):
            raise AssistantError("Assistant returned an unexpected response.")
        return body

    def ask(
        self,
        message: str,
        response_style: str = "detailed",
        response_length: str = "short",
        mission_id: Optional[str] = None,
    ) -> AssistantReply:
        """
        Send one prompt and return the reply.

        When a mission_id is unknown to the collaborator the request is
        repeated once without it.

        Raises:
            ValueError: If style or length is not a recognised option
            AssistantError: On transport failure, error status or empty reply
        """
        if response_style not in RESPONSE_STYLES:
            raise ValueError(f"response_style must be one of {RESPONSE_STYLES}")
        if response_length not in RESPONSE_LENGTHS:
            raise ValueError(f"response_length must be one of {RESPONSE_LENGTHS}")

        payload: Dict[str, Any] = {
            "message": message,
            "response_style": response_style,
            "response_length": response_length,
        }
        body = None
        if mission_id:
            try:
                body = self._post({**payload, "mission_id": mission_id})
            except AssistantError as e:
                detail = str(e).lower()
                if "not found" not in detail or "mission_id" not in detail:
                    raise
                logger.info(f"Mission {mission_id} unknown to assistant, retrying without it")
        if body is None:
            body = self._post(payload)

        reply = str(body.get("reply") or "").strip()
        if not reply:
            raise AssistantError("Assistant returned empty response.")
        return AssistantReply(
            reply=reply,
            provider=body.get("provider") or "core",
            model=body.get("model") or "unknown",
        )
