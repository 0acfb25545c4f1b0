"""
tests/test_scripts.py

Command-line entry points with their service wiring replaced by in-memory fakes.
"""

from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path
from types import ModuleType
from unittest.mock import MagicMock

import pytest
from conftest import InMemoryResourceStore, ScriptedFetch

from app.config import SEQUENTIAL_MODE, BatchSettings
from app.fetching.errors import PermanentFetchError
from app.fetching.types import CacheStrategy
from app.services.keyword_research_service import KeywordResearchResult, KeywordResearchService
from app.services.technical_research_service import TechnicalResearchResult, TechnicalResearchService
from app.workflow import WorkflowStepError

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"


def _load_script(name: str) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"_script_{name}", SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(monkeypatch: pytest.MonkeyPatch, module: ModuleType, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", [module.__file__, *argv])
    return module.main()


class TestRunKeywordResearch:
    @pytest.fixture()
    def script(self, monkeypatch: pytest.MonkeyPatch) -> tuple[ModuleType, MagicMock]:
        module = _load_script("run_keyword_research")
        service = MagicMock(spec=KeywordResearchService)
        monkeypatch.setattr(module, "build_keyword_research_service", lambda: service)
        return module, service

    def test_prints_result_and_exits_zero(
        self,
        script: tuple[ModuleType, MagicMock],
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        module, service = script
        service.run.return_value = KeywordResearchResult(
            term="oauth",
            keywords=[{"keyword": "oauth flow", "source": "titles"}],
            run_id="run-1",
        )

        exit_code = _run(monkeypatch, module, "--term", "oauth", "--revalidate", "--run-id", "run-1")

        assert exit_code == 0
        service.run.assert_called_once_with("oauth", cache_strategy=CacheStrategy.REVALIDATE, run_id="run-1")
        output = json.loads(capsys.readouterr().out)
        assert output["runId"] == "run-1"
        assert output["keywords"] == [{"keyword": "oauth flow", "source": "titles"}]

    def test_failed_step_is_reported_and_exits_one(
        self,
        script: tuple[ModuleType, MagicMock],
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        module, service = script
        service.run.side_effect = WorkflowStepError("run-9", "search", "Unauthorized")

        exit_code = _run(monkeypatch, module, "--term", "oauth")

        assert exit_code == 1
        service.run.assert_called_once_with("oauth", cache_strategy=CacheStrategy.STALE, run_id=None)
        assert json.loads(capsys.readouterr().out) == {
            "runId": "run-9",
            "failedStep": "search",
            "error": "Unauthorized",
        }

    def test_term_is_required(self, script: tuple[ModuleType, MagicMock], monkeypatch: pytest.MonkeyPatch) -> None:
        module, _ = script

        with pytest.raises(SystemExit) as excinfo:
            _run(monkeypatch, module)

        assert excinfo.value.code == 2


class TestRunTechnicalResearch:
    def test_prints_result_and_exits_zero(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        module = _load_script("run_technical_research")
        service = MagicMock(spec=TechnicalResearchService)
        service.run.return_value = TechnicalResearchResult(
            term="cors",
            results=[{"url": "https://developer.mozilla.org/cors", "summary": "CORS relaxes same-origin"}],
            run_id="run-2",
            scrape_summary={"total": 1, "succeeded": 1, "cached": 0, "failed": 0, "failed_keys": []},
        )
        monkeypatch.setattr(module, "build_technical_research_service", lambda: service)

        exit_code = _run(monkeypatch, module, "--term", "cors")

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["message"] == "Technical research for cors completed (1/1 results scraped successfully)"
        assert output["results"][0]["url"] == "https://developer.mozilla.org/cors"


class TestScrapeUrls:
    @pytest.fixture()
    def script(self, monkeypatch: pytest.MonkeyPatch) -> tuple[ModuleType, InMemoryResourceStore, ScriptedFetch]:
        module = _load_script("scrape_urls")
        store = InMemoryResourceStore()
        fetch = ScriptedFetch(
            {
                "https://a.dev/page": [{"url": "https://a.dev/page", "markdown": "# A", "metadata": {}}],
                "https://b.dev/blocked": [PermanentFetchError("blocked by robots", status_code=403)],
            }
        )
        connector = MagicMock()
        connector.fetch = fetch
        monkeypatch.setattr(module, "FirecrawlConnector", lambda **kwargs: connector)
        monkeypatch.setattr(module, "SQLAlchemyResourceStore", lambda **kwargs: store)
        monkeypatch.setattr(
            module,
            "get_batch_settings",
            lambda: BatchSettings(mode=SEQUENTIAL_MODE, max_workers=1, item_delay_seconds=0.0),
        )
        return module, store, fetch

    def test_all_scraped_exits_zero_and_second_run_hits_cache(
        self,
        script: tuple[ModuleType, InMemoryResourceStore, ScriptedFetch],
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        module, _, fetch = script

        assert _run(monkeypatch, module, "https://a.dev/page", "--term", "api") == 0
        first = json.loads(capsys.readouterr().out)
        assert _run(monkeypatch, module, "https://a.dev/page") == 0
        second = json.loads(capsys.readouterr().out)

        assert first["items"] == [
            {"url": "https://a.dev/page", "status": "succeeded", "persisted": True, "error": None}
        ]
        assert second["items"][0]["status"] == "cached"
        assert second["summary"]["cached"] == 1
        assert fetch.count("https://a.dev/page") == 1

    def test_any_failure_exits_one(
        self,
        script: tuple[ModuleType, InMemoryResourceStore, ScriptedFetch],
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        module, _, _ = script

        exit_code = _run(monkeypatch, module, "https://a.dev/page", "https://b.dev/blocked", "--mode", "sequential")

        assert exit_code == 1
        output = json.loads(capsys.readouterr().out)
        assert output["summary"]["failed_keys"] == [{"key": "https://b.dev/blocked", "error": "blocked by robots"}]
        assert [item["status"] for item in output["items"]] == ["succeeded", "failed"]
