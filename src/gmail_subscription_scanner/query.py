"""Gmail search query for subscription-related messages."""

from __future__ import annotations

from .constants import PROVIDER_DOMAINS, PROVIDER_KEYWORDS, SUBJECT_KEYWORDS


def build_query(
    keywords: list[str] | None = None,
    providers: list[str] | None = None,
    domains: list[str] | None = None,
) -> str:
    """Return a Gmail search expression matching subscription mail.

    A message matches when its subject contains any keyword or provider
    name, or when it was sent from one of the provider domains.
    """
    keywords = SUBJECT_KEYWORDS if keywords is None else keywords
    providers = PROVIDER_KEYWORDS if providers is None else providers
    domains = PROVIDER_DOMAINS if domains is None else domains

    clauses = []
    subject_terms = [*keywords, *providers]
    if subject_terms:
        clauses.append(f"subject:({' OR '.join(subject_terms)})")
    if domains:
        clauses.append(f"from:({' OR '.join(domains)})")

    return f"in:anywhere ({' OR '.join(clauses)})"
