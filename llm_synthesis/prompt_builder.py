"""Prompt builders for SEO keyword extraction and technical search evaluation."""

import json
import re
from typing import Dict, List, Sequence

from llm_synthesis.schema import KeywordExtraction, SearchEvaluation

_SCHEMA_JSON = json.dumps(KeywordExtraction.model_json_schema(), indent=2)
_EVALUATION_SCHEMA_JSON = json.dumps(SearchEvaluation.model_json_schema(), indent=2)

_H2_PATTERN = re.compile(r"^##\s+(.*)$", re.MULTILINE)

KEYWORD_RESEARCH_SYSTEM_PROMPT = """\
You are an SEO Expert & Content Writer specializing in creating technical content \
for Developer Tools that are highly SEO optimized.

Objectives:
1. Keyword Extraction: extract relevant keywords from the provided titles or headers \
of top-ranking organic search results. Focus on technical and context-specific terms \
related to API development.
2. Quality Assurance:
   - Remove stopwords ("for", "and", "the", "of", ...).
   - Remove brand names ("GitHub", "YouTube", "npm", ...).
   - Remove instructive README phrases ("getting started", "installation", ...).

Guidelines:
- Prioritize keywords that directly relate to the main term and its subtopics.
- Branded keywords belong in keywordsWithBrandNames, never in keywords.
- Return strictly valid JSON with the keys "keywords" and "keywordsWithBrandNames".
- Do NOT wrap the JSON in markdown code fences.
"""


def extract_h2_headers(markdown: str) -> List[str]:
    """Return the text of every ``## `` header line in a markdown document."""
    return [header.strip() for header in _H2_PATTERN.findall(markdown or "") if header.strip()]


class KeywordPromptBuilder:
    """Builds user prompts for keyword extraction from titles or H2 headers."""

    def build_titles_prompt(self, term: str, organic_results: Sequence[Dict]) -> str:
        """Build the prompt for keywords taken from organic result titles.

        Args:
            term: The glossary term being researched.
            organic_results: Serper organic results with ``link`` and ``title``.

        Returns:
            A fully formatted prompt string.
        """
        titles = ";".join(
            f'The title for the sourceUrl "{result["link"]}" '
            f'(reference this url as the sourceUrl for the keyword) is: "{result.get("title", "")}"'
            for result in organic_results
        )
        return (
            f"Below is a list of titles separated by semicolons (';') from the top organic "
            f"search results currently ranking for the term '{term}'.\n"
            f"Given that some pages might be SEO optimized, there's a chance that we can "
            f"extract keywords from the page titles.\n"
            f"Create a list of keywords that are directly related to the main term and its "
            f"subtopics from the titles of the pages.\n\n"
            f"Some titles contain the brand of the website (e.g. github, youtube) or the "
            f"section of the website (e.g. blog, docs); do not treat them as keywords.\n\n"
            f"==========\n{titles}\n==========\n\n"
            f"{self._schema_section()}"
        )

    def build_headers_prompt(self, term: str, headers_by_url: Dict[str, List[str]]) -> str:
        """Build the prompt for keywords taken from scraped H2 headers.

        Returns an empty string when no URL has headers.
        """
        sections = [
            f'The headers for the organic result "{url}" '
            f"(ensure you're referencing this url as the sourceUrl for the keyword) are:\n"
            + "\n".join(f"## {header}" for header in headers)
            for url, headers in headers_by_url.items()
            if headers
        ]
        if not sections:
            return ""
        context = "\n==========\n".join(sections)
        return (
            f"Below is a list of h2 headers from the top organic search results currently "
            f"ranking for the term '{term}'. Given that some pages might be SEO optimized, "
            f"there's a chance that we can extract keywords from them.\n"
            f"Create a list of keywords that are directly related to the main term and its "
            f"subtopics from the h2 headers of the pages.\n\n"
            f"==========\n{context}\n==========\n\n"
            f"{self._schema_section()}"
        )

    @staticmethod
    def _schema_section() -> str:
        return (
            "Your response MUST conform to this JSON schema:\n\n"
            f"```json\n{_SCHEMA_JSON}\n```\n"
        )


SEARCH_EVALUATION_SYSTEM_PROMPT = """\
You are a senior technical researcher deciding which search results are worth reading \
before writing a glossary entry for developers.

Rate every result from 1 (irrelevant) to 10 (essential) and justify the rating in one sentence.

Guidelines:
- Prefer content published in 2020 or later.
- Official, Community and Neutral results may rate slightly higher than General results.
- Rate implementation examples, tutorials for a single product and marketing pages low.
- Rate every result exactly once, using its url unchanged.
- Return strictly valid JSON with the key "evaluations".
- Do NOT wrap the JSON in markdown code fences.
"""


def build_search_evaluation_prompt(term: str, results: Sequence[Dict]) -> str:
    """Build the prompt that rates technical search results for ``term``.

    Each result needs ``url`` and ``domainCategory``; ``title`` and
    ``publishedDate`` are included when present.
    """
    entries = "\n".join(
        f'- url: "{result["url"]}" | category: {result["domainCategory"]} | '
        f'title: "{result.get("title") or ""}" | published: {result.get("publishedDate") or "unknown"}'
        for result in results
    )
    return (
        f"Below are search results for the technical term '{term}', grouped by the kind "
        f"of source they come from.\n"
        f"Rate how useful each one is for understanding what '{term}' is and how it "
        f"works in API development.\n\n"
        f"==========\n{entries}\n==========\n\n"
        "Your response MUST conform to this JSON schema:\n\n"
        f"```json\n{_EVALUATION_SCHEMA_JSON}\n```\n"
    )
