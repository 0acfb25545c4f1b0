"""
app/connectors/base.py

Base connector abstraction and shared HTTP mechanics.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import requests

from app.config import ConnectorSettings
from app.fetching.errors import (
    ConfigurationError,
    PermanentFetchError,
    RateLimitedError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

RATE_LIMITED_STATUS_CODE = 429


class BaseConnector(ABC):
    """
    Connector interface: ``fetch(key)`` returns a JSON-serializable payload.

    Each call performs exactly one HTTP request. Retrying throttled calls is
    left to the fetch-or-create resolver, so errors are mapped to the fetch
    error taxonomy instead of being retried here.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        settings: ConnectorSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.api_key:
            raise ConfigurationError(f"{source}: API key is not configured.")
        self.source = source
        self._api_key = settings.api_key
        self._base_url = settings.base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_seconds = settings.timeout_seconds
        self._min_request_interval_seconds = (
            1.0 / settings.rate_limit_per_second if settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0
        self._rate_limit_lock = threading.Lock()

    @abstractmethod
    def fetch(self, key: str) -> Any:
        """
        Fetch the upstream resource identified by ``key``.
        """

    def __call__(self, key: str) -> Any:
        return self.fetch(key)

    def _post_json(
        self,
        *,
        path: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        POST a JSON body and return the parsed JSON response.
        """

        url = f"{self._base_url}/{path.lstrip('/')}"
        self._apply_rate_limit()
        try:
            response = self._session.request(
                method="POST",
                url=url,
                json=body,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("Connector request unreachable source=%s url=%s error=%s", self.source, url, exc)
            raise UpstreamError(f"{self.source}: upstream unreachable ({exc.__class__.__name__}).") from exc

        self._raise_for_status(response, url=url)
        try:
            return response.json()
        except ValueError as exc:
            raise PermanentFetchError(
                f"{self.source}: response was not valid JSON.",
                status_code=response.status_code,
            ) from exc

    def _raise_for_status(self, response: requests.Response, *, url: str) -> None:
        status_code = response.status_code
        if status_code < 400:
            return

        if status_code == RATE_LIMITED_STATUS_CODE:
            logger.warning("Connector rate limited source=%s url=%s", self.source, url)
            raise RateLimitedError(f"{self.source}: rate limited (HTTP 429).")

        detail = _response_detail(response)
        logger.error(
            "Connector request failed source=%s status=%s url=%s detail=%s",
            self.source,
            status_code,
            url,
            detail,
        )
        if status_code >= 500:
            raise UpstreamError(f"{self.source}: upstream error (HTTP {status_code}).", status_code=status_code)
        raise PermanentFetchError(
            f"{self.source}: request rejected (HTTP {status_code}): {detail}",
            status_code=status_code,
        )

    def _apply_rate_limit(self) -> None:
        """
        Enforce minimum interval between outbound requests from this client.
        """

        if self._min_request_interval_seconds <= 0:
            return

        with self._rate_limit_lock:
            now = time.monotonic()
            elapsed = now - self._last_request_monotonic
            remaining = self._min_request_interval_seconds - elapsed
            if remaining > 0:
                time.sleep(remaining)
            self._last_request_monotonic = time.monotonic()


def _response_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        for field in ("error", "message", "detail"):
            value = body.get(field)
            if value:
                return str(value)[:200]
    return str(body)[:200]
