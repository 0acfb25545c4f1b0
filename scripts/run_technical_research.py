"""
Run technical research for one glossary term from CLI.
"""

from __future__ import annotations

import argparse
import json

from app.config import get_log_level
from app.fetching.logging_utils import configure_logging
from app.fetching.types import CacheStrategy
from app.services.technical_research_service import build_technical_research_service
from app.workflow import WorkflowStepError


def main() -> int:
    parser = argparse.ArgumentParser(description="Run technical research for a glossary term.")
    parser.add_argument("--term", required=True, help="Glossary term to research.")
    parser.add_argument(
        "--revalidate",
        action="store_true",
        help="Ignore cached searches, ratings and page contents.",
    )
    parser.add_argument(
        "--run-id",
        dest="run_id",
        default=None,
        help="Resume an earlier run; succeeded steps are skipped.",
    )
    args = parser.parse_args()

    configure_logging(get_log_level())
    cache_strategy = CacheStrategy.REVALIDATE if args.revalidate else CacheStrategy.STALE
    service = build_technical_research_service()
    try:
        result = service.run(args.term, cache_strategy=cache_strategy, run_id=args.run_id)
    except WorkflowStepError as exc:
        print(
            json.dumps(
                {"runId": exc.run_id, "failedStep": exc.step_name, "error": exc.message},
                indent=2,
            )
        )
        return 1

    print(json.dumps(result.as_dict(), indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
