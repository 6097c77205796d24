"""Data models for Gmail Subscription Scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from .constants import FREQUENCY_MONTHLY


@dataclass
class AccessToken:
    """A delegated Gmail access token and the refresh token behind it."""

    value: str
    expires_at: datetime | None = None
    refresh_token: str | None = None


@dataclass
class MessageRef:
    """A message ID from a list page."""

    id: str
    page_token: str | None = None  # token used to request the page it came from


@dataclass
class MessageDetail:
    """Header projection of a single Gmail message."""

    id: str
    subject: str
    sender: str  # Full From header value
    date: str = ""
    snippet: str = ""


@dataclass
class SubscriptionCandidate:
    """A subscription inferred from one message, not yet persisted."""

    provider: str
    type: str | None = None  # subscription, recurring, price, confirmation
    price: Decimal | None = None
    frequency: str = FREQUENCY_MONTHLY
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_message_id: str = ""
    message_date: datetime | None = None


@dataclass
class SubscriptionRecord:
    """A stored subscription, one per (user_id, provider)."""

    user_id: str
    provider: str
    price: Decimal | None
    frequency: str
    last_detected_date: str
    created_at: str
    updated_at: str
    type: str | None = None
    source_message_id: str = ""


@dataclass
class PriceChange:
    """A price difference between the stored and the newly detected price."""

    provider: str
    old_price: Decimal
    new_price: Decimal
    change: Decimal
    percentage_change: Decimal | None
    frequency_months: int
    next_renewal_date: str


@dataclass
class ScanResult:
    """Result of a subscription scan for one user."""

    user_id: str
    subscriptions: list[SubscriptionRecord] = field(default_factory=list)
    count: int = 0
    price_changes: list[PriceChange] = field(default_factory=list)
    messages_scanned: int = 0
    messages_failed: int = 0
    scan_date: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    query: str = ""
    token: AccessToken | None = None  # possibly refreshed; the caller stores it
