"""
app/services/domain_categories.py

Source categories searched separately during technical research.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DomainCategory:
    """
    A named set of domains. An empty ``domains`` tuple means no restriction.
    """

    name: str
    domains: tuple[str, ...]
    description: str


DOMAIN_CATEGORIES: tuple[DomainCategory, ...] = (
    DomainCategory(
        name="Official",
        domains=("tools.ietf.org", "datatracker.ietf.org", "rfc-editor.org", "w3.org", "iso.org"),
        description="Official standards and specifications sources",
    ),
    DomainCategory(
        name="Community",
        domains=(
            "stackoverflow.com",
            "github.com",
            "wikipedia.org",
            "news.ycombinator.com",
            "stackexchange.com",
        ),
        description="Community-driven platforms and forums",
    ),
    DomainCategory(
        name="Neutral",
        domains=("owasp.org", "developer.mozilla.org"),
        description="Educational and vendor-neutral resources",
    ),
    DomainCategory(
        name="Google",
        domains=(),
        description="General search results without domain restrictions",
    ),
)


def get_domain_category(name: str) -> DomainCategory:
    for category in DOMAIN_CATEGORIES:
        if category.name.lower() == name.strip().lower():
            return category
    raise ValueError(f"Unknown domain category '{name}'.")
