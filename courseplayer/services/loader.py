"""HTTP client that fetches raw lecture markup from the content backend."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from ..errors import EmptyContent, Forbidden, LoaderError, NotFound, TransportError, Unauthorized
from .events import emit_structured_event
from .naming import display_name, normalize_content_id


LOGGER = logging.getLogger(__name__)

CONTENT_PATH = "/api/content/lecture-content/{content_id}"

CredentialProvider = Callable[[], Optional[str]]

_MISSING_TOKEN_MESSAGE = "No authentication token found. Please login again."
_UNAUTHORIZED_MESSAGE = "Authentication failed. Please login again."
_FORBIDDEN_MESSAGE = "Subscription required to access this lecture. Please subscribe to continue."
_EMPTY_MESSAGE = "Lecture content is empty."
_CONNECT_MESSAGE = "Unable to connect to server. Please check your internet connection."
_NETWORK_MESSAGE = "Network error. Please try again."
_REASON_LIMIT = 200


@dataclass(frozen=True)
class ContentItem:
    """Raw lecture markup as returned by the backend."""

    id: str
    raw_markup: str
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_name(self) -> str:
        return display_name(self.id)

    def __len__(self) -> int:
        return len(self.raw_markup)


def _not_found_message(content_id: str) -> str:
    return f'Lecture "{content_id}" not found in database.'


def _extract_reason(response: httpx.Response) -> Optional[str]:
    """Return a human-readable reason from an error response when one exists."""

    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return None
    text = (text or "").strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:_REASON_LIMIT]
    return text[:_REASON_LIMIT]


class ContentLoader:
    """Fetch lecture markup with bearer-token authorization.

    ``load`` either returns a :class:`ContentItem` or raises one of the
    :class:`~courseplayer.errors.LoaderError` subclasses. No retries are made;
    the caller decides whether to try again.
    """

    def __init__(
        self,
        base_url: str,
        credential: CredentialProvider,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credential = credential
        self._client = client
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_url(self, content_id: str) -> str:
        return self._base_url + CONTENT_PATH.format(content_id=quote(content_id, safe=""))

    async def load(self, content_id: Optional[str]) -> ContentItem:
        normalized = normalize_content_id(content_id)
        if not normalized:
            raise NotFound(_not_found_message(normalized), content_id=normalized)

        token = self._credential()
        if not token:
            raise Unauthorized(_MISSING_TOKEN_MESSAGE, content_id=normalized)

        url = self.build_url(normalized)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "text/html",
        }
        LOGGER.info("Loading lecture '%s'", normalized)
        start = time.perf_counter()
        try:
            response = await self._get(url, headers)
        except httpx.ConnectError as error:
            LOGGER.error("Could not reach content backend for '%s': %s", normalized, error)
            raise TransportError(_CONNECT_MESSAGE, content_id=normalized) from error
        except httpx.InvalidURL as error:
            LOGGER.error("Content backend URL is not usable for '%s': %s", normalized, error)
            raise TransportError(_CONNECT_MESSAGE, content_id=normalized) from error
        except httpx.HTTPError as error:
            LOGGER.error("Network failure while loading '%s': %s", normalized, error)
            raise TransportError(_NETWORK_MESSAGE, content_id=normalized) from error
        duration_ms = (time.perf_counter() - start) * 1000.0

        emit_structured_event(
            "CONTENT_FETCH",
            "Lecture request finished",
            payload={"status": response.status_code, "url": str(response.url)},
            context={"item": normalized},
            duration_ms=duration_ms,
        )
        self._raise_for_status(normalized, response)

        content = response.text
        if len(content) == 0:
            raise EmptyContent(_EMPTY_MESSAGE, content_id=normalized)

        LOGGER.info("Lecture content loaded: %s characters", len(content))
        return ContentItem(id=normalized, raw_markup=content)

    async def _get(self, url: str, headers: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(url, headers=headers)

    @staticmethod
    def _raise_for_status(content_id: str, response: httpx.Response) -> None:
        status_code = response.status_code
        if response.is_success:
            return
        if status_code == 401:
            raise Unauthorized(_UNAUTHORIZED_MESSAGE, content_id=content_id)
        if status_code == 403:
            raise Forbidden(_FORBIDDEN_MESSAGE, content_id=content_id)
        if status_code == 404:
            raise NotFound(_not_found_message(content_id), content_id=content_id)

        reason = _extract_reason(response)
        LOGGER.error("Content backend returned %s for '%s': %s", status_code, content_id, reason)
        message = f"Failed to load lecture: {status_code}"
        if reason:
            message = f"{message} ({reason})"
        raise TransportError(
            message,
            content_id=content_id,
            status_code=status_code,
            reason=reason,
        )


__all__ = ["CONTENT_PATH", "ContentItem", "ContentLoader", "CredentialProvider", "LoaderError"]
