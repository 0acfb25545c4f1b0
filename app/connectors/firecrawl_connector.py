"""
app/connectors/firecrawl_connector.py

Firecrawl scrape connector returning page markdown and metadata.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.config import ConnectorSettings
from app.connectors.base import BaseConnector
from app.fetching.errors import PermanentFetchError

logger = logging.getLogger(__name__)

_METADATA_FIELDS = (
    "sourceURL",
    "scrapeId",
    "title",
    "description",
    "language",
    "ogTitle",
    "ogDescription",
    "ogUrl",
    "ogImage",
    "ogSiteName",
)


class FirecrawlConnector(BaseConnector):
    """
    Scrapes one URL per call via ``POST /scrape`` with markdown output.
    """

    def __init__(
        self,
        *,
        settings: ConnectorSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="firecrawl", settings=settings, session=session)

    def fetch(self, key: str) -> dict[str, Any]:
        return self.scrape(key)

    def scrape(self, url: str) -> dict[str, Any]:
        body = self._post_json(
            path="/scrape",
            body={"url": url, "formats": ["markdown"]},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        if not isinstance(body, dict):
            raise PermanentFetchError(f"{self.source}: unexpected response shape for {url}.")

        if not body.get("success", False):
            error = body.get("error") or "Unknown error occurred"
            logger.warning("Firecrawl scrape unsuccessful url=%s error=%s", url, error)
            raise PermanentFetchError(f"{self.source}: {error}")

        data = body.get("data") if isinstance(body.get("data"), dict) else body
        raw_metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        metadata = {field: raw_metadata.get(field) or "" for field in _METADATA_FIELDS}
        metadata["sourceURL"] = metadata["sourceURL"] or url

        markdown = data.get("markdown")
        if not isinstance(markdown, str) or not markdown.strip():
            # Stored as a failure so the next lookup scrapes again.
            raise PermanentFetchError(f"{self.source}: empty markdown for {url}.")

        return {
            "url": url,
            "markdown": markdown,
            "metadata": metadata,
        }
