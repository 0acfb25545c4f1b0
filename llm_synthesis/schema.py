"""Structured output schemas for LLM keyword extraction and search evaluation."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator


class ExtractedKeyword(BaseModel):
    """One keyword with the organic result it was taken from."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    keyword: str = Field(min_length=1)
    sourceUrl: HttpUrl

    @field_validator("keyword")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.lower()

    @property
    def source_url(self) -> str:
        return str(self.sourceUrl)


class KeywordExtraction(BaseModel):
    """Only allowed output contract for keyword extraction.

    Branded keywords are kept apart so they never reach the keyword table.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    keywords: List[ExtractedKeyword]
    keywordsWithBrandNames: List[ExtractedKeyword] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "KeywordExtraction":
        return cls(keywords=[], keywordsWithBrandNames=[])


class SearchResultRating(BaseModel):
    """Relevance score the model gave one search result."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    url: HttpUrl
    rating: int = Field(ge=1, le=10)
    justification: str = ""

    @property
    def source_url(self) -> str:
        return str(self.url)


class SearchEvaluation(BaseModel):
    """Only allowed output contract for rating technical search results."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    evaluations: List[SearchResultRating]
