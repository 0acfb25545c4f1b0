"""Re-ask the model when its reply cannot be read.

Only structural failures (JSON parse, shape, schema) are retried, and each
retry repeats the original prompt followed by the problems found in the
previous reply. Adapter transport errors propagate unchanged.
"""

import logging
from typing import Callable, Iterable, List, Optional, TypeVar

from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.schema import KeywordExtraction, SearchEvaluation
from llm_synthesis.validator import (
    STAGE_JSON_PARSE,
    STAGE_SCHEMA,
    STAGE_SHAPE,
    LLMOutputValidationError,
    validate_llm_output,
    validate_search_evaluation,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_STAGES = frozenset({STAGE_JSON_PARSE, STAGE_SHAPE, STAGE_SCHEMA})

_CORRECTION_TEMPLATE = (
    "\n\nYour previous reply could not be used:\n{problems}\n"
    "Reply again with a single JSON object that follows the schema above."
)


class LLMRetryExhaustedError(Exception):
    """Every attempt produced an unreadable reply.

    Attributes:
        attempts: Number of ``generate`` calls made.
        history: The validation error of each attempt, oldest first.
    """

    def __init__(self, attempts: int, history: List[LLMOutputValidationError]) -> None:
        self.attempts = attempts
        self.history = history
        super().__init__(f"No valid reply after {attempts} attempt(s): {history[-1]}")

    @property
    def last_error(self) -> LLMOutputValidationError:
        return self.history[-1]


def with_correction(prompt: str, error: LLMOutputValidationError) -> str:
    problems = "\n".join(f"- {problem}" for problem in error.errors[:10])
    return prompt + _CORRECTION_TEMPLATE.format(problems=problems)


def generate_validated(
    adapter: BaseLLMAdapter,
    prompt: str,
    validate: Callable[[str], T],
    system: Optional[str] = None,
    max_retries: int = 2,
) -> T:
    """Generate until ``validate`` accepts a reply.

    Args:
        adapter: LLM adapter to call.
        prompt: User prompt for the first attempt.
        validate: Turns a raw reply into the result or raises
            ``LLMOutputValidationError``.
        system: Optional system instructions, sent on every attempt.
        max_retries: Extra attempts after the first unreadable reply.

    Returns:
        Whatever ``validate`` returned for the first readable reply.

    Raises:
        LLMRetryExhaustedError: If ``1 + max_retries`` replies all fail.
    """
    history: List[LLMOutputValidationError] = []
    current_prompt = prompt
    total = 1 + max(0, max_retries)

    while len(history) < total:
        raw = adapter.generate(current_prompt, system=system)
        try:
            result = validate(raw)
        except LLMOutputValidationError as exc:
            if exc.stage not in _RETRYABLE_STAGES:
                raise
            history.append(exc)
            logger.warning("Unreadable LLM reply (%d/%d): %s", len(history), total, exc)
            current_prompt = with_correction(prompt, exc)
            continue

        if history:
            logger.info("LLM reply accepted after %d correction(s)", len(history))
        return result

    raise LLMRetryExhaustedError(attempts=total, history=history)


def generate_with_retry(
    adapter: BaseLLMAdapter,
    prompt: str,
    system: Optional[str] = None,
    max_retries: int = 2,
    allowed_source_urls: Optional[Iterable[str]] = None,
) -> KeywordExtraction:
    """Generate and validate a keyword extraction.

    ``allowed_source_urls`` is passed to ``validate_llm_output``.
    """
    allowed = list(allowed_source_urls) if allowed_source_urls is not None else None
    return generate_validated(
        adapter,
        prompt,
        lambda raw: validate_llm_output(raw, allowed_source_urls=allowed),
        system=system,
        max_retries=max_retries,
    )


def generate_search_evaluation(
    adapter: BaseLLMAdapter,
    prompt: str,
    system: Optional[str] = None,
    max_retries: int = 2,
    allowed_urls: Optional[Iterable[str]] = None,
) -> SearchEvaluation:
    """Generate and validate ratings for a set of search results."""
    allowed = list(allowed_urls) if allowed_urls is not None else None
    return generate_validated(
        adapter,
        prompt,
        lambda raw: validate_search_evaluation(raw, allowed_urls=allowed),
        system=system,
        max_retries=max_retries,
    )
