"""
app/services/technical_research_service.py

Technical research workflow for one glossary term: search every domain
category, let the LLM rate the results, then fetch contents of the best ones.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session

from app.config import get_batch_settings, get_exa_settings, get_llm_settings, get_retry_settings
from app.connectors import ExaConnector
from app.fetching.batch import BatchCoordinator
from app.fetching.logging_utils import log_event
from app.fetching.resolver import FetchOrCreateResolver
from app.fetching.storage import ResourceStore, SQLAlchemyResourceStore
from app.fetching.types import CacheStrategy, ItemStatus
from app.services.domain_categories import DOMAIN_CATEGORIES, DomainCategory
from app.workflow import SQLAlchemyStepStatusStore, StepStatusStore, WorkflowRunner, WorkflowStep
from db.models.external_resource import ExternalResourceType
from llm_synthesis.adapter import BaseLLMAdapter, build_adapter
from llm_synthesis.prompt_builder import SEARCH_EVALUATION_SYSTEM_PROMPT, build_search_evaluation_prompt
from llm_synthesis.retry import generate_search_evaluation
from llm_synthesis.validator import normalize_url

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "technical_research"
INCLUDE_RATING_THRESHOLD = 7

STEP_DOMAIN_SEARCH = "domain_search"
STEP_EVALUATE = "evaluate_results"
STEP_CONTENTS = "scrape_results"
TECHNICAL_RESEARCH_STEPS = (STEP_DOMAIN_SEARCH, STEP_EVALUATE, STEP_CONTENTS)

SUMMARY_QUERY_TEMPLATE = (
    "You are the CTO of an API development tools company writing a glossary entry on '{term}'. "
    "Summarize what this page explains about {term}: the definition, how it works and the "
    "details an API developer needs to know."
)

SearchFunction = Callable[[str, Sequence[str]], Any]
ContentsFunction = Callable[[str, str], Any]


class TechnicalResearchError(RuntimeError):
    """
    Raised inside a step when the workflow cannot continue for a term.
    """


@dataclass
class TechnicalResearchResult:
    term: str
    results: list[dict[str, Any]]
    run_id: str | None = None
    search_summary: dict[str, Any] | None = None
    scrape_summary: dict[str, Any] | None = None
    skipped_steps: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.scrape_summary:
            return f"Technical research for {self.term} completed (no results rated relevant)"
        return (
            f"Technical research for {self.term} completed "
            f"({self.scrape_summary['succeeded']}/{self.scrape_summary['total']} results scraped successfully)"
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "term": self.term,
            "runId": self.run_id,
            "results": self.results,
            "searchSummary": self.search_summary,
            "scrapeSummary": self.scrape_summary,
            "skippedSteps": self.skipped_steps,
        }


def _url_identity(url: str) -> str:
    return url.strip().rstrip("/").lower()


class TechnicalResearchService:
    """
    Runs domain search -> evaluation -> contents for a term as a resumable workflow.

    Every upstream call goes through a fetch-or-create resolver, so under
    ``STALE`` a rerun only calls Exa or the LLM for what is not cached yet.
    ``search`` is ``(query, include_domains) -> payload`` and ``contents`` is
    ``(url, summary_query) -> payload``; ``ExaConnector`` provides both.
    """

    def __init__(
        self,
        *,
        search_coordinator: BatchCoordinator,
        evaluation_resolver: FetchOrCreateResolver,
        contents_coordinator: BatchCoordinator,
        search: SearchFunction,
        contents: ContentsFunction,
        llm_adapter: BaseLLMAdapter,
        step_store: StepStatusStore,
        llm_max_retries: int = 2,
        categories: Sequence[DomainCategory] = DOMAIN_CATEGORIES,
    ) -> None:
        self._search_coordinator = search_coordinator
        self._evaluation_resolver = evaluation_resolver
        self._contents_coordinator = contents_coordinator
        self._search = search
        self._contents = contents
        self._llm_adapter = llm_adapter
        self._step_store = step_store
        self._llm_max_retries = llm_max_retries
        self._categories = tuple(categories)

    def run(
        self,
        term: str,
        *,
        cache_strategy: CacheStrategy = CacheStrategy.STALE,
        run_id: str | None = None,
    ) -> TechnicalResearchResult:
        normalized_term = term.strip()
        if not normalized_term:
            raise ValueError("Term must not be empty.")

        runner = self.build_runner(normalized_term, cache_strategy=cache_strategy)
        run_result = runner.run(run_id=run_id)
        outputs = run_result.outputs

        contents_output = outputs.get(STEP_CONTENTS) or {}
        result = TechnicalResearchResult(
            term=normalized_term,
            results=[item for item in contents_output.get("results", []) if item["success"]],
            run_id=run_result.run_id,
            search_summary=(outputs.get(STEP_DOMAIN_SEARCH) or {}).get("summary"),
            scrape_summary=contents_output.get("summary"),
            skipped_steps=run_result.skipped_steps,
        )
        log_event(
            logger,
            logging.INFO,
            "technical_research_completed",
            term=normalized_term,
            run_id=run_result.run_id,
            results=len(result.results),
            skipped_steps=run_result.skipped_steps,
        )
        return result

    def build_runner(self, term: str, *, cache_strategy: CacheStrategy) -> WorkflowRunner:
        def bind(step: Callable[..., Any]) -> Callable[[dict[str, Any]], Any]:
            return lambda outputs: step(term, outputs, cache_strategy)

        return WorkflowRunner(
            workflow_name=WORKFLOW_NAME,
            steps=[
                WorkflowStep(STEP_DOMAIN_SEARCH, bind(self._domain_search_step)),
                WorkflowStep(STEP_EVALUATE, bind(self._evaluate_step)),
                WorkflowStep(STEP_CONTENTS, bind(self._contents_step)),
            ],
            store=self._step_store,
        )

    def _domain_search_step(
        self,
        term: str,
        outputs: dict[str, Any],
        cache_strategy: CacheStrategy,
    ) -> dict[str, Any]:
        categories_by_key = {f"{category.name.lower()}:{term}": category for category in self._categories}

        def fetch(key: str) -> Any:
            return self._search(term, categories_by_key[key].domains)

        batch = self._search_coordinator.resolve_many(
            list(categories_by_key),
            fetch,
            cache_strategy=cache_strategy,
            input_term=term,
        )

        categories: list[dict[str, Any]] = []
        for outcome in batch.outcomes:
            category = categories_by_key[outcome.key]
            payload = outcome.record.payload if outcome.success else None
            results = payload.get("results") if isinstance(payload, dict) else None
            categories.append(
                {
                    "category": category.name,
                    "status": outcome.status.value,
                    "success": outcome.success,
                    "error": outcome.error,
                    "results": results or [],
                }
            )

        failed = [item["category"] for item in categories if not item["success"]]
        if failed:
            logger.warning("Domain search failed for some categories term=%s categories=%s", term, ", ".join(failed))
        if len(failed) == len(categories):
            raise TechnicalResearchError(f"Domain search failed in every category for term '{term}'.")
        return {"summary": batch.summary.as_dict(), "categories": categories}

    def _evaluate_step(self, term: str, outputs: dict[str, Any], cache_strategy: CacheStrategy) -> dict[str, Any]:
        candidates: list[dict[str, Any]] = []
        seen: set[str] = set()
        for category in outputs[STEP_DOMAIN_SEARCH]["categories"]:
            for item in category["results"]:
                identity = _url_identity(item["url"])
                if identity in seen:
                    continue
                seen.add(identity)
                candidates.append({**item, "domainCategory": category["category"]})

        if not candidates:
            raise TechnicalResearchError(f"No search results to evaluate for term '{term}'.")

        digest = hashlib.sha256("\n".join(sorted(seen)).encode("utf-8")).hexdigest()[:16]
        outcome = self._evaluation_resolver.resolve(
            f"{term}:{digest}",
            lambda key: self._rate(term, candidates),
            cache_strategy=cache_strategy,
            input_term=term,
        )
        if not outcome.success or not isinstance(outcome.record.payload, dict):
            raise TechnicalResearchError(f"Evaluation failed for term '{term}': {outcome.error or 'empty response'}")

        ratings = {normalize_url(item["url"]): item for item in outcome.record.payload.get("evaluations", [])}
        included: list[dict[str, Any]] = []
        excluded = 0
        for candidate in candidates:
            rating = ratings.get(normalize_url(candidate["url"]))
            if rating is None or rating["rating"] < INCLUDE_RATING_THRESHOLD:
                excluded += 1
                continue
            included.append(
                {
                    "url": candidate["url"],
                    "domainCategory": candidate["domainCategory"],
                    "rating": rating["rating"],
                    "justification": rating["justification"],
                }
            )

        log_event(
            logger,
            logging.INFO,
            "search_results_evaluated",
            term=term,
            included=len(included),
            excluded=excluded,
            cached=outcome.status is ItemStatus.CACHED,
        )
        return {"included": included, "excluded": excluded}

    def _rate(self, term: str, candidates: list[dict[str, Any]]) -> dict[str, Any]:
        evaluation = generate_search_evaluation(
            self._llm_adapter,
            build_search_evaluation_prompt(term, candidates),
            system=SEARCH_EVALUATION_SYSTEM_PROMPT,
            max_retries=self._llm_max_retries,
            allowed_urls=[item["url"] for item in candidates],
        )
        return {
            "evaluations": [
                {"url": item.source_url, "rating": item.rating, "justification": item.justification}
                for item in evaluation.evaluations
            ]
        }

    def _contents_step(self, term: str, outputs: dict[str, Any], cache_strategy: CacheStrategy) -> dict[str, Any]:
        included = outputs[STEP_EVALUATE]["included"]
        if not included:
            logger.warning("No search results rated relevant term=%s; nothing to scrape", term)
            return {"summary": None, "results": []}

        included_by_key = {f"{term}:{item['url']}": item for item in included}
        summary_query = SUMMARY_QUERY_TEMPLATE.format(term=term)

        def fetch(key: str) -> Any:
            return self._contents(included_by_key[key]["url"], summary_query)

        batch = self._contents_coordinator.resolve_many(
            list(included_by_key),
            fetch,
            cache_strategy=cache_strategy,
            input_term=term,
        )

        results: list[dict[str, Any]] = []
        for outcome in batch.outcomes:
            item = included_by_key[outcome.key]
            payload = outcome.record.payload if outcome.success and isinstance(outcome.record.payload, dict) else {}
            results.append(
                {
                    "url": item["url"],
                    "domainCategory": item["domainCategory"],
                    "rating": item["rating"],
                    "status": outcome.status.value,
                    "success": outcome.success,
                    "error": outcome.error,
                    "title": payload.get("title", ""),
                    "summary": payload.get("summary", ""),
                    "textLength": len(payload.get("text") or ""),
                }
            )

        if batch.summary.failed:
            logger.warning(
                "Some results failed to scrape term=%s failed=%s",
                term,
                ", ".join(item.key for item in batch.summary.failed_keys),
            )
        if batch.summary.succeeded == 0:
            raise TechnicalResearchError(f"No relevant result could be scraped for term '{term}'.")
        return {"summary": batch.summary.as_dict(), "results": results}


def build_technical_research_service(
    *,
    session_factory: Callable[[], Session] | None = None,
    resource_store: ResourceStore | None = None,
    llm_adapter: BaseLLMAdapter | None = None,
) -> TechnicalResearchService:
    """
    Wire the Exa connector, caches and stores from environment settings.

    Raises ``ConfigurationError`` when ``EXA_API_KEY`` is missing.
    """

    if session_factory is None:
        from db.session import SessionLocal

        session_factory = SessionLocal

    retry_settings = get_retry_settings()
    batch_settings = get_batch_settings()
    store = resource_store or SQLAlchemyResourceStore(session_factory=session_factory)
    exa = ExaConnector(settings=get_exa_settings())
    llm_settings = get_llm_settings()

    def resolver(resource_type: str) -> FetchOrCreateResolver:
        return FetchOrCreateResolver(resource_type=resource_type, store=store, retry_settings=retry_settings)

    return TechnicalResearchService(
        search_coordinator=BatchCoordinator(resolver(ExternalResourceType.EXA_SEARCH), batch_settings),
        evaluation_resolver=resolver(ExternalResourceType.SEARCH_EVALUATION),
        contents_coordinator=BatchCoordinator(resolver(ExternalResourceType.EXA_CONTENTS), batch_settings),
        search=exa.search,
        contents=lambda url, summary_query: exa.contents(url, summary_query=summary_query),
        llm_adapter=llm_adapter or build_adapter(llm_settings),
        step_store=SQLAlchemyStepStatusStore(session_factory=session_factory),
        llm_max_retries=llm_settings.max_retries,
    )


@lru_cache(maxsize=1)
def get_technical_research_service() -> TechnicalResearchService:
    """
    Build and cache the technical research service.
    """

    return build_technical_research_service()
