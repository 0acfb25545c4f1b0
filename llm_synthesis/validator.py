"""Turn raw LLM replies into clean structured outputs.

Structural problems (unparseable JSON, wrong shape, schema violations)
raise ``LLMOutputValidationError`` so the caller can re-ask the model.
Content problems are repaired instead: duplicate keywords, branded
keywords leaking into ``keywords`` and entries citing a URL that was
never offered are dropped.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, HttpUrl, TypeAdapter, ValidationError

from llm_synthesis.schema import ExtractedKeyword, KeywordExtraction, SearchEvaluation, SearchResultRating

logger = logging.getLogger(__name__)

_FENCED = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)
_HTTP_URL = TypeAdapter(HttpUrl)

STAGE_JSON_PARSE = "json_parse"
STAGE_SHAPE = "shape"
STAGE_SCHEMA = "schema"

ModelT = TypeVar("ModelT", bound=BaseModel)


class LLMOutputValidationError(Exception):
    """Raised when a reply cannot be read as the expected model.

    Attributes:
        stage: ``json_parse``, ``shape`` or ``schema``.
        errors: One readable line per problem, suitable for feeding back
            to the model.
        raw_response: The reply as received.
    """

    def __init__(self, stage: str, errors: List[str], raw_response: str) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        super().__init__(f"[{stage}] " + "; ".join(errors))


def parse_json_object(raw_response: str) -> Dict[str, Any]:
    text = (raw_response or "").strip()
    fenced = _FENCED.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise LLMOutputValidationError(STAGE_JSON_PARSE, [f"invalid JSON: {exc}"], raw_response) from exc

    if not isinstance(data, dict):
        raise LLMOutputValidationError(
            STAGE_SHAPE,
            [f"expected a JSON object, got {type(data).__name__}"],
            raw_response,
        )
    return data


def validate_model(raw_response: str, model: Type[ModelT]) -> ModelT:
    """Parse a reply into ``model``, ignoring top-level keys it does not declare."""
    data = parse_json_object(raw_response)
    payload = {key: data[key] for key in model.model_fields if key in data}

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        errors = [
            "{}: {}".format(".".join(str(part) for part in error["loc"]), error["msg"])
            for error in exc.errors()
        ]
        raise LLMOutputValidationError(STAGE_SCHEMA, errors, raw_response) from exc


def normalize_url(url: str) -> str:
    """Normalize a URL the way ``HttpUrl`` fields store it.

    Hosts are lower-cased and non-ASCII paths percent-encoded, so a URL
    offered in a prompt compares equal to the same URL read back from a
    validated reply. Trailing slashes are ignored.
    """
    try:
        normalized = str(_HTTP_URL.validate_python(url))
    except ValidationError:
        normalized = url
    return normalized.rstrip("/")


def _allowed_set(urls: Optional[Iterable[str]]) -> Optional[Set[str]]:
    if urls is None:
        return None
    return {normalize_url(url) for url in urls}


def _clean(
    items: Iterable[ExtractedKeyword],
    *,
    exclude: Set[str],
    allowed_urls: Optional[Set[str]],
) -> List[ExtractedKeyword]:
    kept: List[ExtractedKeyword] = []
    seen: Set[str] = set()
    for item in items:
        if item.keyword in seen or item.keyword in exclude:
            continue
        if allowed_urls is not None and normalize_url(item.source_url) not in allowed_urls:
            logger.debug("Dropping keyword '%s' with unknown source %s", item.keyword, item.source_url)
            continue
        seen.add(item.keyword)
        kept.append(item)
    return kept


def validate_llm_output(
    raw_response: str,
    allowed_source_urls: Optional[Iterable[str]] = None,
) -> KeywordExtraction:
    """Parse, validate and clean one keyword extraction reply.

    Args:
        raw_response: Text returned by the adapter, optionally wrapped in
            a markdown code fence.
        allowed_source_urls: URLs offered in the prompt. When given,
            keywords citing any other URL are dropped.

    Returns:
        A KeywordExtraction with lower-cased, de-duplicated keywords.

    Raises:
        LLMOutputValidationError: If the reply is not a valid extraction.
    """
    extraction = validate_model(raw_response, KeywordExtraction)

    branded = _clean(extraction.keywordsWithBrandNames, exclude=set(), allowed_urls=None)
    keywords = _clean(
        extraction.keywords,
        exclude={item.keyword for item in branded},
        allowed_urls=_allowed_set(allowed_source_urls),
    )
    return KeywordExtraction(keywords=keywords, keywordsWithBrandNames=branded)


def validate_search_evaluation(
    raw_response: str,
    allowed_urls: Optional[Iterable[str]] = None,
) -> SearchEvaluation:
    """Parse one search evaluation reply.

    Ratings for URLs that were not offered are dropped, and only the first
    rating per URL is kept.

    Raises:
        LLMOutputValidationError: If the reply is not a valid evaluation.
    """
    evaluation = validate_model(raw_response, SearchEvaluation)
    allowed = _allowed_set(allowed_urls)

    kept: List[SearchResultRating] = []
    seen: Set[str] = set()
    for item in evaluation.evaluations:
        url = normalize_url(item.source_url)
        if url in seen:
            continue
        if allowed is not None and url not in allowed:
            logger.debug("Dropping rating for unknown result %s", item.source_url)
            continue
        seen.add(url)
        kept.append(item)
    return SearchEvaluation(evaluations=kept)
