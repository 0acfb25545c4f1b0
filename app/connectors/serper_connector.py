"""
app/connectors/serper_connector.py

Serper Google search connector.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.config import ConnectorSettings
from app.connectors.base import BaseConnector
from app.fetching.errors import PermanentFetchError

logger = logging.getLogger(__name__)


class SerperConnector(BaseConnector):
    """
    Runs one search per call and keeps organic results and related searches.
    """

    def __init__(
        self,
        *,
        settings: ConnectorSettings,
        session: requests.Session | None = None,
        results_per_query: int = 10,
    ) -> None:
        super().__init__(source="serper", settings=settings, session=session)
        self._results_per_query = max(1, results_per_query)

    def fetch(self, key: str) -> dict[str, Any]:
        return self.search(key)

    def search(self, query: str) -> dict[str, Any]:
        body = self._post_json(
            path="/search",
            body={"q": query, "num": self._results_per_query},
            headers={"X-API-KEY": self._api_key},
        )
        if not isinstance(body, dict):
            raise PermanentFetchError(f"{self.source}: unexpected response shape for query '{query}'.")

        organic = [
            self._normalize_organic(item, fallback_position=index + 1)
            for index, item in enumerate(body.get("organic") or [])
            if isinstance(item, dict) and item.get("link")
        ]
        related = [
            {"query": str(item["query"]).strip()}
            for item in body.get("relatedSearches") or []
            if isinstance(item, dict) and str(item.get("query") or "").strip()
        ]
        logger.info(
            "Serper search completed query=%s organic=%s related=%s",
            query,
            len(organic),
            len(related),
        )
        return {"query": query, "organic": organic, "relatedSearches": related}

    @staticmethod
    def _normalize_organic(item: dict[str, Any], *, fallback_position: int) -> dict[str, Any]:
        position = item.get("position")
        return {
            "title": str(item.get("title") or "").strip(),
            "link": str(item["link"]).strip(),
            "snippet": str(item.get("snippet") or "").strip(),
            "position": position if isinstance(position, int) else fallback_position,
        }
