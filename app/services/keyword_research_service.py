"""
app/services/keyword_research_service.py

Keyword research workflow for one glossary term.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session

from app.config import (
    get_batch_settings,
    get_firecrawl_settings,
    get_llm_settings,
    get_retry_settings,
    get_serper_settings,
)
from app.connectors import FirecrawlConnector, SerperConnector
from app.fetching.batch import BatchCoordinator
from app.fetching.logging_utils import log_event
from app.fetching.resolver import FetchFunction, FetchOrCreateResolver
from app.fetching.storage import ResourceStore, SQLAlchemyResourceStore
from app.fetching.types import CacheStrategy, ItemStatus
from app.services.keyword_store import KeywordRecord, KeywordStore, SQLAlchemyKeywordStore
from app.workflow import SQLAlchemyStepStatusStore, StepStatusStore, WorkflowRunner, WorkflowStep
from db.models.external_resource import ExternalResourceType
from db.models.keyword import KeywordSource
from llm_synthesis.adapter import BaseLLMAdapter, build_adapter
from llm_synthesis.prompt_builder import (
    KEYWORD_RESEARCH_SYSTEM_PROMPT,
    KeywordPromptBuilder,
    extract_h2_headers,
)
from llm_synthesis.retry import generate_with_retry

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "keyword_research"
TOP_RESULTS_TO_SCRAPE = 3

STEP_SEARCH = "search"
STEP_SCRAPE = "scrape_top_results"
STEP_TITLES = "keywords_from_titles"
STEP_HEADERS = "keywords_from_headers"
STEP_RELATED = "related_searches"
KEYWORD_RESEARCH_STEPS = (STEP_SEARCH, STEP_SCRAPE, STEP_TITLES, STEP_HEADERS, STEP_RELATED)


class KeywordResearchError(RuntimeError):
    """
    Raised inside a step when the workflow cannot continue for a term.
    """


@dataclass
class KeywordResearchResult:
    term: str
    keywords: list[dict[str, Any]]
    run_id: str | None = None
    from_cache: bool = False
    scrape_summary: dict[str, Any] | None = None
    skipped_steps: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.from_cache:
            return f"Found existing keywords for {self.term}"
        if self.scrape_summary is None:
            return f"Keyword Research for {self.term} completed"
        return (
            f"Keyword Research for {self.term} completed "
            f"({self.scrape_summary['succeeded']}/{self.scrape_summary['total']} URLs scraped successfully)"
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "term": self.term,
            "runId": self.run_id,
            "fromCache": self.from_cache,
            "keywords": self.keywords,
            "scrapeSummary": self.scrape_summary,
            "skippedSteps": self.skipped_steps,
        }


class KeywordResearchService:
    """
    Runs search -> scrape -> keyword extraction for a term as a resumable workflow.

    ``search_fetch`` and ``scrape_fetch`` are ``key -> payload`` callables; the
    Serper and Firecrawl connectors satisfy them in production.
    """

    def __init__(
        self,
        *,
        search_resolver: FetchOrCreateResolver,
        scrape_coordinator: BatchCoordinator,
        search_fetch: FetchFunction,
        scrape_fetch: FetchFunction,
        llm_adapter: BaseLLMAdapter,
        keyword_store: KeywordStore,
        step_store: StepStatusStore,
        llm_max_retries: int = 2,
        prompt_builder: KeywordPromptBuilder | None = None,
    ) -> None:
        self._search_resolver = search_resolver
        self._scrape_coordinator = scrape_coordinator
        self._search_fetch = search_fetch
        self._scrape_fetch = scrape_fetch
        self._llm_adapter = llm_adapter
        self._keyword_store = keyword_store
        self._step_store = step_store
        self._llm_max_retries = llm_max_retries
        self._prompt_builder = prompt_builder or KeywordPromptBuilder()

    def run(
        self,
        term: str,
        *,
        cache_strategy: CacheStrategy = CacheStrategy.STALE,
        run_id: str | None = None,
    ) -> KeywordResearchResult:
        normalized_term = term.strip()
        if not normalized_term:
            raise ValueError("Term must not be empty.")

        # Tracked runs always go through the step table so their status stays queryable.
        if cache_strategy is CacheStrategy.STALE and run_id is None:
            existing = self._keyword_store.list_for_term(normalized_term)
            if existing:
                log_event(
                    logger,
                    logging.INFO,
                    "keyword_research_cache_hit",
                    term=normalized_term,
                    keywords=len(existing),
                )
                return KeywordResearchResult(
                    term=normalized_term,
                    keywords=[record.as_dict() for record in existing],
                    from_cache=True,
                )

        runner = self.build_runner(normalized_term, cache_strategy=cache_strategy)
        run_result = runner.run(run_id=run_id)
        outputs = run_result.outputs

        keywords = [
            *outputs.get(STEP_TITLES, []),
            *outputs.get(STEP_HEADERS, []),
            *outputs.get(STEP_RELATED, []),
        ]
        scrape_output = outputs.get(STEP_SCRAPE) or {}
        result = KeywordResearchResult(
            term=normalized_term,
            keywords=keywords,
            run_id=run_result.run_id,
            scrape_summary=scrape_output.get("summary"),
            skipped_steps=run_result.skipped_steps,
        )
        log_event(
            logger,
            logging.INFO,
            "keyword_research_completed",
            term=normalized_term,
            run_id=run_result.run_id,
            keywords=len(keywords),
            skipped_steps=run_result.skipped_steps,
        )
        return result

    def build_runner(self, term: str, *, cache_strategy: CacheStrategy) -> WorkflowRunner:
        def bind(step: Callable[..., Any]) -> Callable[[dict[str, Any]], Any]:
            return lambda outputs: step(term, outputs, cache_strategy)

        return WorkflowRunner(
            workflow_name=WORKFLOW_NAME,
            steps=[
                WorkflowStep(STEP_SEARCH, bind(self._search_step)),
                WorkflowStep(STEP_SCRAPE, bind(self._scrape_step)),
                WorkflowStep(STEP_TITLES, bind(self._titles_step)),
                WorkflowStep(STEP_HEADERS, bind(self._headers_step)),
                WorkflowStep(STEP_RELATED, bind(self._related_searches_step)),
            ],
            store=self._step_store,
        )

    def _search_step(self, term: str, outputs: dict[str, Any], cache_strategy: CacheStrategy) -> dict[str, Any]:
        outcome = self._search_resolver.resolve(
            term,
            self._search_fetch,
            cache_strategy=cache_strategy,
            input_term=term,
        )
        if not outcome.success or not isinstance(outcome.record.payload, dict):
            raise KeywordResearchError(f"Search failed for term '{term}': {outcome.error or 'empty response'}")

        payload = outcome.record.payload
        return {
            "organic": payload.get("organic") or [],
            "relatedSearches": payload.get("relatedSearches") or [],
            "cached": outcome.status is ItemStatus.CACHED,
        }

    def _scrape_step(self, term: str, outputs: dict[str, Any], cache_strategy: CacheStrategy) -> dict[str, Any]:
        organic = outputs[STEP_SEARCH]["organic"]
        top_results = sorted(organic, key=lambda item: item.get("position", 0))[:TOP_RESULTS_TO_SCRAPE]
        urls = [item["link"] for item in top_results]

        batch = self._scrape_coordinator.resolve_many(
            urls,
            self._scrape_fetch,
            cache_strategy=cache_strategy,
            input_term=term,
        )
        pages: list[dict[str, Any]] = []
        for outcome in batch.outcomes:
            payload = outcome.record.payload if outcome.success else None
            markdown = payload.get("markdown") if isinstance(payload, dict) else None
            pages.append(
                {
                    "url": outcome.key,
                    "status": outcome.status.value,
                    "success": outcome.success,
                    "error": outcome.error,
                    "headers": extract_h2_headers(markdown or ""),
                }
            )

        if batch.summary.failed:
            logger.warning(
                "Some URLs failed to scrape term=%s failed=%s",
                term,
                ", ".join(item.key for item in batch.summary.failed_keys),
            )
        return {"summary": batch.summary.as_dict(), "pages": pages}

    def _titles_step(self, term: str, outputs: dict[str, Any], cache_strategy: CacheStrategy) -> list[dict[str, Any]]:
        if cache_strategy is CacheStrategy.STALE:
            existing = self._keyword_store.list_for_term(term, source=KeywordSource.TITLES)
            if existing:
                return [record.as_dict() for record in existing]

        organic = outputs[STEP_SEARCH]["organic"]
        if not organic:
            logger.warning("No organic results to extract title keywords from term=%s", term)
            return []

        prompt = self._prompt_builder.build_titles_prompt(term, organic)
        extraction = generate_with_retry(
            self._llm_adapter,
            prompt,
            system=KEYWORD_RESEARCH_SYSTEM_PROMPT,
            max_retries=self._llm_max_retries,
            allowed_source_urls=[item["link"] for item in organic],
        )
        stored = self._keyword_store.upsert_many(
            input_term=term,
            source=KeywordSource.TITLES,
            rows=[(item.keyword, item.source_url) for item in extraction.keywords],
        )
        return _as_dicts(stored)

    def _headers_step(self, term: str, outputs: dict[str, Any], cache_strategy: CacheStrategy) -> list[dict[str, Any]]:
        if cache_strategy is CacheStrategy.STALE:
            existing = self._keyword_store.list_for_term(term, source=KeywordSource.HEADERS)
            if existing:
                return [record.as_dict() for record in existing]

        pages = outputs[STEP_SCRAPE]["pages"]
        headers_by_url = {page["url"]: page["headers"] for page in pages if page["success"] and page["headers"]}
        if not headers_by_url:
            logger.warning("No scraped pages with H2 headers term=%s; skipping header keywords", term)
            return []

        prompt = self._prompt_builder.build_headers_prompt(term, headers_by_url)
        try:
            extraction = generate_with_retry(
                self._llm_adapter,
                prompt,
                system=KEYWORD_RESEARCH_SYSTEM_PROMPT,
                max_retries=self._llm_max_retries,
                allowed_source_urls=list(headers_by_url),
            )
        except Exception as exc:
            logger.warning(
                "Header keyword extraction failed term=%s error=%s; continuing without header keywords",
                term,
                exc,
            )
            return []

        if not extraction.keywords:
            return []
        stored = self._keyword_store.upsert_many(
            input_term=term,
            source=KeywordSource.HEADERS,
            rows=[(item.keyword, item.source_url) for item in extraction.keywords],
        )
        return _as_dicts(stored)

    def _related_searches_step(
        self,
        term: str,
        outputs: dict[str, Any],
        cache_strategy: CacheStrategy,
    ) -> list[dict[str, Any]]:
        if cache_strategy is CacheStrategy.STALE:
            existing = self._keyword_store.list_for_term(term, source=KeywordSource.RELATED_SEARCHES)
            if existing:
                return _as_dicts(existing)

        related = outputs[STEP_SEARCH]["relatedSearches"]
        stored = self._keyword_store.upsert_many(
            input_term=term,
            source=KeywordSource.RELATED_SEARCHES,
            rows=[(item["query"], None) for item in related],
        )
        return _as_dicts(stored)


def _as_dicts(records: list[KeywordRecord]) -> list[dict[str, Any]]:
    return [record.as_dict() for record in records]


def build_keyword_research_service(
    *,
    session_factory: Callable[[], Session] | None = None,
    resource_store: ResourceStore | None = None,
    llm_adapter: BaseLLMAdapter | None = None,
) -> KeywordResearchService:
    """
    Wire connectors, caches and stores from environment settings.

    Raises ``ConfigurationError`` when an API key is missing.
    """

    if session_factory is None:
        from db.session import SessionLocal

        session_factory = SessionLocal

    retry_settings = get_retry_settings()
    store = resource_store or SQLAlchemyResourceStore(session_factory=session_factory)
    serper = SerperConnector(settings=get_serper_settings())
    firecrawl = FirecrawlConnector(settings=get_firecrawl_settings())
    scrape_resolver = FetchOrCreateResolver(
        resource_type=ExternalResourceType.FIRECRAWL,
        store=store,
        retry_settings=retry_settings,
    )
    llm_settings = get_llm_settings()

    return KeywordResearchService(
        search_resolver=FetchOrCreateResolver(
            resource_type=ExternalResourceType.SERPER,
            store=store,
            retry_settings=retry_settings,
        ),
        scrape_coordinator=BatchCoordinator(scrape_resolver, get_batch_settings()),
        search_fetch=serper.fetch,
        scrape_fetch=firecrawl.fetch,
        llm_adapter=llm_adapter or build_adapter(llm_settings),
        keyword_store=SQLAlchemyKeywordStore(session_factory=session_factory),
        step_store=SQLAlchemyStepStatusStore(session_factory=session_factory),
        llm_max_retries=llm_settings.max_retries,
    )


@lru_cache(maxsize=1)
def get_keyword_research_service() -> KeywordResearchService:
    """
    Build and cache the keyword research service.
    """

    return build_keyword_research_service()
