"""Scan orchestration - lists messages, extracts, dedupes, detects price
changes and stores subscriptions."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from .auth import TokenGuard, TokenRefresher, utcnow
from .constants import (
    FETCH_BATCH_SIZE,
    MAX_MESSAGES,
    PAGE_SIZE,
    REFRESH_MARGIN,
    REQUEST_TIMEOUT,
    RETRY_ATTEMPTS,
    UPSERT_BATCH_SIZE,
)
from .errors import StoreError
from .extractor import DEFAULT_HEURISTICS, Heuristics
from .fetcher import BatchExtractor, PageFetcher, call_mailbox
from .gmail_client import GmailMailbox, Mailbox
from .models import AccessToken, PriceChange, ScanResult, SubscriptionCandidate
from .pricing import detect_price_change
from .query import build_query
from .retry import RetryPolicy
from .store import PersistenceWriter, SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class ScanConfig:
    """Per-scan limits; defaults come from constants."""

    max_messages: int = MAX_MESSAGES
    page_size: int = PAGE_SIZE
    fetch_batch_size: int = FETCH_BATCH_SIZE
    upsert_batch_size: int = UPSERT_BATCH_SIZE
    request_timeout: int = REQUEST_TIMEOUT
    retry_attempts: int = RETRY_ATTEMPTS
    refresh_margin: int = REFRESH_MARGIN


@dataclass
class ScanContext:
    """Everything a scan needs, owned and passed in by the caller."""

    store: SubscriptionStore
    refresher: TokenRefresher
    config: ScanConfig = field(default_factory=ScanConfig)
    mailbox_factory: Callable[[TokenGuard, int], Mailbox] = GmailMailbox
    retry: RetryPolicy | None = None
    heuristics: Heuristics = DEFAULT_HEURISTICS
    clock: Callable[[], datetime] = utcnow
    progress: Callable[[int, int], None] | None = None


def dedupe_candidates(candidates: Iterable[SubscriptionCandidate]) -> list[SubscriptionCandidate]:
    """Keep the first candidate seen for each provider, in order."""
    seen: dict[str, SubscriptionCandidate] = {}
    for candidate in candidates:
        if candidate.provider not in seen:
            seen[candidate.provider] = candidate
    return list(seen.values())


def scan(
    user_id: str,
    access_token: str,
    refresh_token: str | None,
    context: ScanContext,
    *,
    expires_at: datetime | None = None,
) -> ScanResult:
    """Run a full subscription scan for one user.

    Raises AuthExpired when the token can't be refreshed or is rejected,
    FetchError when the mailbox keeps failing, and StoreError when writing
    fails.  Nothing is written unless listing and extraction finished.
    """
    config = context.config
    scan_date = context.clock().isoformat()
    guard = TokenGuard(
        AccessToken(value=access_token, expires_at=expires_at, refresh_token=refresh_token),
        context.refresher,
        refresh_margin=config.refresh_margin,
        clock=context.clock,
    )
    guard.current()

    retry = context.retry or RetryPolicy(attempts=config.retry_attempts)
    mailbox = context.mailbox_factory(guard, config.request_timeout)

    profile = call_mailbox(retry, "checking mailbox access", mailbox.get_profile)
    logger.info("Scanning mailbox %s for user %s", profile.get("emailAddress", "?"), user_id)

    query = build_query()
    pages = PageFetcher(mailbox, retry, max_messages=config.max_messages, page_size=config.page_size)
    extractor = BatchExtractor(
        mailbox,
        retry,
        batch_size=config.fetch_batch_size,
        heuristics=context.heuristics,
        clock=context.clock,
    )
    candidates = extractor.extract(pages.list_messages(query), callback=context.progress)
    unique = dedupe_candidates(candidates)
    providers = [c.provider for c in unique]

    store = context.store
    try:
        previous = store.get_many(user_id, providers)
    except sqlite3.Error as exc:
        raise StoreError(f"Failed to read stored subscriptions: {exc}") from exc

    # Compare against what was stored before this scan writes anything.
    price_changes: list[PriceChange] = []
    for candidate in unique:
        change = detect_price_change(user_id, candidate, previous.get(candidate.provider))
        if change is not None:
            logger.info(
                "Price change for %s: %s -> %s",
                change.provider,
                change.old_price,
                change.new_price,
            )
            price_changes.append(change)

    writer = PersistenceWriter(store, retry, batch_size=config.upsert_batch_size, clock=context.clock)
    count = writer.upsert(user_id, unique)

    try:
        stored = store.get_many(user_id, providers)
    except sqlite3.Error as exc:
        raise StoreError(f"Failed to read stored subscriptions: {exc}") from exc

    return ScanResult(
        user_id=user_id,
        subscriptions=[stored[p] for p in providers if p in stored],
        count=count,
        price_changes=price_changes,
        messages_scanned=extractor.messages_scanned,
        messages_failed=extractor.messages_failed,
        scan_date=scan_date,
        query=query,
        token=guard.token,
    )
