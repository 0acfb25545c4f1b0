"""
tests/test_technical_research_service.py

Technical research over in-memory stores, a fake Exa client and the mock LLM.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import pytest
from conftest import InMemoryResourceStore, InMemoryStepStatusStore, RecordingSleep

from app.config import SEQUENTIAL_MODE, BatchSettings, RetrySettings
from app.fetching.batch import BatchCoordinator
from app.fetching.errors import PermanentFetchError
from app.fetching.resolver import FetchOrCreateResolver
from app.fetching.types import CacheStrategy
from app.services.domain_categories import DOMAIN_CATEGORIES, get_domain_category
from app.services.technical_research_service import (
    STEP_CONTENTS,
    STEP_DOMAIN_SEARCH,
    STEP_EVALUATE,
    TECHNICAL_RESEARCH_STEPS,
    TechnicalResearchService,
)
from app.workflow import WorkflowStepError
from db.models.external_resource import ExternalResourceType
from db.models.workflow_step_run import WorkflowStepStatus
from llm_synthesis.adapter import MockLLMAdapter

TERM = "http semantics"

RFC = "https://www.rfc-editor.org/rfc/rfc9110"
ANSWER = "https://stackoverflow.com/q/1"
REPO = "https://github.com/x/y"
BLOG = "https://a.dev/http"


def _results(*urls: str) -> list[dict[str, Any]]:
    return [{"url": url, "title": f"Title of {url}", "publishedDate": "2023-01-01", "author": None} for url in urls]


class FakeExa:
    """
    Search results keyed by the first included domain, or "google" when unrestricted.
    """

    def __init__(self) -> None:
        self.search_results: dict[str, Any] = {
            "tools.ietf.org": _results(RFC),
            "stackoverflow.com": _results(ANSWER, REPO),
            "owasp.org": PermanentFetchError("exa: no results"),
            "google": _results(BLOG, ANSWER + "/"),
        }
        self.failing_urls: set[str] = {BLOG}
        self.search_calls: list[tuple[str, tuple[str, ...]]] = []
        self.contents_calls: list[str] = []
        self.summary_queries: list[str] = []

    def search(self, query: str, include_domains: Sequence[str]) -> dict[str, Any]:
        self.search_calls.append((query, tuple(include_domains)))
        entry = self.search_results[include_domains[0] if include_domains else "google"]
        if isinstance(entry, BaseException):
            raise entry
        return {"query": query, "includeDomains": list(include_domains), "results": entry}

    def contents(self, url: str, summary_query: str) -> dict[str, Any]:
        self.contents_calls.append(url)
        self.summary_queries.append(summary_query)
        if url in self.failing_urls:
            raise PermanentFetchError(f"exa: no contents for {url}")
        return {"url": url, "title": "Page", "summary": f"summary of {url}", "text": "body text"}


class LowRatingAdapter(MockLLMAdapter):
    def __init__(self, low_urls: set[str]) -> None:
        super().__init__()
        self.low_urls = low_urls

    def generate(self, prompt: str, system: str | None = None) -> str:
        reply = json.loads(super().generate(prompt, system=system))
        for item in reply.get("evaluations", []):
            if item["url"] in self.low_urls:
                item["rating"] = 3
        return json.dumps(reply)


class Harness:
    def __init__(self, *, llm_adapter: MockLLMAdapter | None = None, llm_max_retries: int = 0) -> None:
        self.resources = InMemoryResourceStore()
        self.steps = InMemoryStepStatusStore()
        self.sleep = RecordingSleep()
        self.exa = FakeExa()
        self.llm = llm_adapter or LowRatingAdapter({REPO})
        retry = RetrySettings(base_delay_seconds=0.1, max_retries=2, jitter_seconds=0.0)
        batch = BatchSettings(mode=SEQUENTIAL_MODE, max_workers=1, item_delay_seconds=0.0)

        def resolver(resource_type: str) -> FetchOrCreateResolver:
            return FetchOrCreateResolver(
                resource_type=resource_type,
                store=self.resources,
                retry_settings=retry,
                sleep=self.sleep,
            )

        self.service = TechnicalResearchService(
            search_coordinator=BatchCoordinator(resolver(ExternalResourceType.EXA_SEARCH), batch, sleep=self.sleep),
            evaluation_resolver=resolver(ExternalResourceType.SEARCH_EVALUATION),
            contents_coordinator=BatchCoordinator(
                resolver(ExternalResourceType.EXA_CONTENTS),
                batch,
                sleep=self.sleep,
            ),
            search=self.exa.search,
            contents=self.exa.contents,
            llm_adapter=self.llm,
            step_store=self.steps,
            llm_max_retries=llm_max_retries,
        )


def test_domain_categories_cover_official_community_neutral_and_general() -> None:
    assert [category.name for category in DOMAIN_CATEGORIES] == ["Official", "Community", "Neutral", "Google"]
    assert get_domain_category(" neutral ").domains == ("owasp.org", "developer.mozilla.org")
    assert get_domain_category("Google").domains == ()
    with pytest.raises(ValueError):
        get_domain_category("Vendor")


def test_full_run_searches_each_category_rates_and_scrapes_relevant_results() -> None:
    harness = Harness()

    result = harness.service.run(TERM, run_id="run-1")

    assert [domains for _, domains in harness.exa.search_calls] == [
        category.domains for category in DOMAIN_CATEGORIES
    ]
    assert result.search_summary["total"] == 4
    assert result.search_summary["failed"] == 1

    prompt = harness.llm.prompts[0]
    for url in (RFC, ANSWER, REPO, BLOG):
        assert f'"{url}"' in prompt
    assert f'"{ANSWER}/"' not in prompt

    # The low-rated repository is never scraped.
    assert harness.exa.contents_calls == [RFC, ANSWER, BLOG]
    assert all(TERM in query for query in harness.exa.summary_queries)
    assert [(item["url"], item["domainCategory"]) for item in result.results] == [
        (RFC, "Official"),
        (ANSWER, "Community"),
    ]
    assert result.results[0]["summary"] == f"summary of {RFC}"
    assert result.scrape_summary["succeeded"] == 2
    assert result.message == f"Technical research for {TERM} completed (2/3 results scraped successfully)"

    statuses = [step.status for step in harness.steps.list_steps(run_id="run-1")]
    assert statuses == [WorkflowStepStatus.SUCCEEDED] * len(TECHNICAL_RESEARCH_STEPS)


def test_evaluation_output_lists_ratings_for_included_results() -> None:
    harness = Harness()

    harness.service.run(TERM, run_id="run-1")

    evaluation = harness.steps.get_step(run_id="run-1", step_name=STEP_EVALUATE).output
    assert [item["url"] for item in evaluation["included"]] == [RFC, ANSWER, BLOG]
    assert all(item["rating"] >= 7 for item in evaluation["included"])
    assert evaluation["excluded"] == 1


def test_stale_rerun_only_fetches_what_failed_before() -> None:
    harness = Harness()
    harness.service.run(TERM, run_id="run-1")

    result = harness.service.run(TERM, run_id="run-2")

    # Only the failed category is searched again; the unchanged result set reuses the stored rating.
    assert [domains for _, domains in harness.exa.search_calls[4:]] == [("owasp.org", "developer.mozilla.org")]
    assert len(harness.llm.prompts) == 1
    assert harness.exa.contents_calls[3:] == [BLOG]
    assert result.scrape_summary["cached"] == 2


def test_new_search_results_are_rated_again() -> None:
    harness = Harness()
    harness.service.run(TERM, run_id="run-1")
    harness.exa.search_results["owasp.org"] = _results("https://owasp.org/www-community/attacks/csrf")

    harness.service.run(TERM, run_id="run-2")

    assert len(harness.llm.prompts) == 2
    assert "https://owasp.org/www-community/attacks/csrf" in harness.llm.prompts[1]


def test_revalidate_refetches_everything() -> None:
    harness = Harness()
    harness.service.run(TERM)

    harness.service.run(TERM, cache_strategy=CacheStrategy.REVALIDATE)

    assert len(harness.exa.search_calls) == 8
    assert len(harness.llm.prompts) == 2
    assert harness.exa.contents_calls.count(RFC) == 2


def test_search_failure_in_every_category_fails_the_first_step() -> None:
    harness = Harness()
    for domain in list(harness.exa.search_results):
        harness.exa.search_results[domain] = PermanentFetchError("Unauthorized", status_code=401)

    with pytest.raises(WorkflowStepError) as excinfo:
        harness.service.run(TERM, run_id="run-1")

    assert excinfo.value.step_name == STEP_DOMAIN_SEARCH
    assert harness.llm.prompts == []
    assert harness.exa.contents_calls == []


def test_nothing_rated_relevant_completes_without_scraping() -> None:
    harness = Harness(llm_adapter=MockLLMAdapter(rating=4))

    result = harness.service.run(TERM, run_id="run-1")

    assert result.results == []
    assert result.scrape_summary is None
    assert result.message == f"Technical research for {TERM} completed (no results rated relevant)"
    assert harness.exa.contents_calls == []


def test_unreadable_evaluation_fails_the_evaluation_step() -> None:
    class BrokenAdapter(MockLLMAdapter):
        def generate(self, prompt: str, system: str | None = None) -> str:
            self.prompts.append(prompt)
            return "not json"

    harness = Harness(llm_adapter=BrokenAdapter(), llm_max_retries=1)

    with pytest.raises(WorkflowStepError) as excinfo:
        harness.service.run(TERM, run_id="run-1")

    assert excinfo.value.step_name == STEP_EVALUATE
    assert len(harness.llm.prompts) == 2
    assert harness.steps.get_step(run_id="run-1", step_name=STEP_EVALUATE).status == WorkflowStepStatus.FAILED


def test_resume_after_every_scrape_failed() -> None:
    harness = Harness()
    harness.exa.failing_urls = {RFC, ANSWER, BLOG}

    with pytest.raises(WorkflowStepError) as excinfo:
        harness.service.run(TERM, run_id="run-1")
    assert excinfo.value.step_name == STEP_CONTENTS

    harness.exa.failing_urls = set()
    result = harness.service.run(TERM, run_id="run-1")

    assert result.skipped_steps == [STEP_DOMAIN_SEARCH, STEP_EVALUATE]
    assert len(harness.exa.search_calls) == 4
    assert len(harness.llm.prompts) == 1
    assert [item["url"] for item in result.results] == [RFC, ANSWER, BLOG]


def test_blank_term_is_rejected() -> None:
    with pytest.raises(ValueError):
        Harness().service.run("  ")
