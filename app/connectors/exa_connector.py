"""
app/connectors/exa_connector.py

Exa connector: domain-restricted keyword search and page contents with summaries.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from app.config import ConnectorSettings
from app.connectors.base import BaseConnector
from app.fetching.errors import PermanentFetchError

logger = logging.getLogger(__name__)


class ExaConnector(BaseConnector):
    """
    ``search`` runs one keyword search, optionally limited to a set of domains.
    ``contents`` fetches the text of one URL together with a summary written
    for ``summary_query``. Empty replies are permanent failures so they are
    never cached as successes.
    """

    def __init__(
        self,
        *,
        settings: ConnectorSettings,
        session: requests.Session | None = None,
        results_per_query: int = 10,
    ) -> None:
        super().__init__(source="exa", settings=settings, session=session)
        self._results_per_query = max(1, results_per_query)

    def fetch(self, key: str) -> dict[str, Any]:
        return self.search(key)

    def search(self, query: str, include_domains: Sequence[str] = ()) -> dict[str, Any]:
        request_body: dict[str, Any] = {
            "query": query,
            "numResults": self._results_per_query,
            "type": "keyword",
        }
        if include_domains:
            request_body["includeDomains"] = list(include_domains)

        body = self._post_json(path="/search", body=request_body, headers=self._headers())
        if not isinstance(body, dict):
            raise PermanentFetchError(f"{self.source}: unexpected response shape for query '{query}'.")

        results = [
            self._normalize_result(item)
            for item in body.get("results") or []
            if isinstance(item, dict) and item.get("url")
        ]
        if not results:
            scope = ", ".join(include_domains) if include_domains else "any domain"
            raise PermanentFetchError(f"{self.source}: no results for '{query}' in {scope}.")

        logger.info("Exa search completed query=%s domains=%s results=%s", query, len(include_domains), len(results))
        return {"query": query, "includeDomains": list(include_domains), "results": results}

    def contents(self, url: str, *, summary_query: str) -> dict[str, Any]:
        body = self._post_json(
            path="/contents",
            body={
                "urls": [url],
                "text": {"includeHtmlTags": False},
                "summary": {"query": summary_query},
            },
            headers=self._headers(),
        )
        if not isinstance(body, dict):
            raise PermanentFetchError(f"{self.source}: unexpected response shape for {url}.")

        results = [item for item in body.get("results") or [] if isinstance(item, dict)]
        if not results:
            raise PermanentFetchError(f"{self.source}: no contents for {url}{_status_detail(body)}.")

        item = results[0]
        text = str(item.get("text") or "").strip()
        summary = str(item.get("summary") or "").strip()
        if not text and not summary:
            raise PermanentFetchError(f"{self.source}: empty contents for {url}.")

        return {
            "url": str(item.get("url") or url).strip(),
            "title": str(item.get("title") or "").strip(),
            "summary": summary,
            "text": text,
        }

    def _headers(self) -> dict[str, str]:
        return {"x-api-key": self._api_key}

    @staticmethod
    def _normalize_result(item: dict[str, Any]) -> dict[str, Any]:
        return {
            "url": str(item["url"]).strip(),
            "title": str(item.get("title") or "").strip(),
            "publishedDate": item.get("publishedDate"),
            "author": item.get("author"),
        }


def _status_detail(body: dict[str, Any]) -> str:
    for status in body.get("statuses") or []:
        if isinstance(status, dict) and status.get("status") == "error":
            error = status.get("error")
            tag = error.get("tag") if isinstance(error, dict) else error
            if tag:
                return f" ({tag})"
    return ""
