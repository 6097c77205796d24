"""Heuristic extraction of subscription details from message metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime

from .constants import (
    FREQUENCY_MONTHLY,
    FREQUENCY_YEARLY,
    HEURISTICS_VERSION,
    MONTHLY_KEYWORDS,
    PRICE_PATTERN,
    PROVIDER_ALIASES,
    SUBJECT_PROVIDER_ALIASES,
    TYPE_PATTERNS,
    YEARLY_KEYWORDS,
)
from .gmail_client import parse_from_header
from .models import MessageDetail, SubscriptionCandidate

_GROUPED_AMOUNT_RE = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?")


@dataclass(frozen=True)
class Heuristics:
    """The alias, keyword and pattern tables extraction runs against."""

    version: str = HEURISTICS_VERSION
    provider_aliases: list[tuple[str, str]] = field(default_factory=lambda: list(PROVIDER_ALIASES))
    subject_provider_aliases: list[tuple[str, str]] = field(
        default_factory=lambda: list(SUBJECT_PROVIDER_ALIASES)
    )
    type_patterns: list[tuple[str, str]] = field(default_factory=lambda: list(TYPE_PATTERNS))
    price_pattern: str = PRICE_PATTERN
    yearly_keywords: list[str] = field(default_factory=lambda: list(YEARLY_KEYWORDS))
    monthly_keywords: list[str] = field(default_factory=lambda: list(MONTHLY_KEYWORDS))


DEFAULT_HEURISTICS = Heuristics()


def sender_domain(from_value: str) -> str:
    """Return the lowercased domain of the From address, or ''."""
    _, email = parse_from_header(from_value)
    if "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().strip(">").lower()


def resolve_provider(
    from_value: str,
    subject: str,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
) -> str | None:
    """Attribute a message to a provider.

    Known sender domains win, then the first label of the sender domain.
    The subject is only consulted when the sender has no domain at all.
    """
    domain = sender_domain(from_value)
    if domain:
        for key, provider in heuristics.provider_aliases:
            if key in domain:
                return provider
        label = domain.split(".")[0].strip()
        if label:
            return label

    subject_lower = (subject or "").lower()
    for key, provider in heuristics.subject_provider_aliases:
        if key in subject_lower:
            return provider
    return None


def classify_type(text: str, heuristics: Heuristics = DEFAULT_HEURISTICS) -> str | None:
    for type_name, pattern in heuristics.type_patterns:
        if re.search(pattern, text, re.IGNORECASE):
            return type_name
    return None


def parse_price(text: str, heuristics: Heuristics = DEFAULT_HEURISTICS) -> Decimal | None:
    """First currency amount in ``text`` as a Decimal, or None."""
    m = re.search(heuristics.price_pattern, text, re.IGNORECASE)
    if not m:
        return None
    try:
        amount = m.group(1)
        if _GROUPED_AMOUNT_RE.fullmatch(amount):
            return Decimal(amount.replace(",", ""))
        return Decimal(amount.replace(",", "."))
    except (InvalidOperation, IndexError, TypeError):
        return None


def detect_frequency(text: str, heuristics: Heuristics = DEFAULT_HEURISTICS) -> str:
    text = text.lower()
    if any(k in text for k in heuristics.yearly_keywords):
        return FREQUENCY_YEARLY
    if any(k in text for k in heuristics.monthly_keywords):
        return FREQUENCY_MONTHLY
    return FREQUENCY_MONTHLY


def parse_message_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_candidate(
    detail: MessageDetail,
    detected_at: datetime | None = None,
    heuristics: Heuristics = DEFAULT_HEURISTICS,
) -> SubscriptionCandidate | None:
    """Build a candidate from one message, or None if no provider resolves."""
    provider = resolve_provider(detail.sender, detail.subject, heuristics)
    if not provider:
        return None

    text = f"{detail.subject} {detail.snippet}".lower()
    return SubscriptionCandidate(
        provider=provider.strip().lower(),
        type=classify_type(text, heuristics),
        price=parse_price(text, heuristics),
        frequency=detect_frequency(text, heuristics),
        detected_at=detected_at or datetime.now(timezone.utc),
        source_message_id=detail.id,
        message_date=parse_message_date(detail.date),
    )
