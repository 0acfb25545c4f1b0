"""
Scrape URLs through the Firecrawl cache from CLI.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import replace

from app.config import (
    CONCURRENT_MODE,
    SEQUENTIAL_MODE,
    get_batch_settings,
    get_firecrawl_settings,
    get_log_level,
    get_retry_settings,
)
from app.connectors import FirecrawlConnector
from app.fetching.batch import BatchCoordinator
from app.fetching.logging_utils import configure_logging
from app.fetching.resolver import FetchOrCreateResolver
from app.fetching.storage import SQLAlchemyResourceStore
from app.fetching.types import CacheStrategy
from db.models.external_resource import ExternalResourceType
from db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Scrape URLs with caching and rate-limit backoff.")
    parser.add_argument("urls", nargs="+", help="URLs to scrape.")
    parser.add_argument(
        "--mode",
        choices=[SEQUENTIAL_MODE, CONCURRENT_MODE],
        default=None,
        help="Batch scheduling mode (defaults to BATCH_MODE).",
    )
    parser.add_argument("--term", default=None, help="Optional glossary term to link results to.")
    parser.add_argument("--revalidate", action="store_true", help="Ignore cached scrapes.")
    args = parser.parse_args()

    configure_logging(get_log_level())
    batch_settings = get_batch_settings()
    if args.mode:
        batch_settings = replace(batch_settings, mode=args.mode)

    connector = FirecrawlConnector(settings=get_firecrawl_settings())
    resolver = FetchOrCreateResolver(
        resource_type=ExternalResourceType.FIRECRAWL,
        store=SQLAlchemyResourceStore(session_factory=SessionLocal),
        retry_settings=get_retry_settings(),
    )
    coordinator = BatchCoordinator(resolver, batch_settings)
    result = coordinator.resolve_many(
        args.urls,
        connector.fetch,
        cache_strategy=CacheStrategy.REVALIDATE if args.revalidate else CacheStrategy.STALE,
        input_term=args.term,
    )

    payload = {
        "summary": result.summary.as_dict(),
        "items": [
            {
                "url": outcome.key,
                "status": outcome.status.value,
                "persisted": outcome.record.persisted,
                "error": outcome.error,
            }
            for outcome in result.outcomes
        ],
    }
    print(json.dumps(payload, indent=2))
    return 0 if result.summary.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
