"""Shared fixtures for tests."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from gmail_subscription_scanner.retry import RetryPolicy
from gmail_subscription_scanner.scanner import ScanContext
from gmail_subscription_scanner.store import SubscriptionStore


def make_message(
    message_id: str,
    subject: str,
    sender: str,
    snippet: str = "",
    date: str = "Mon, 15 Jan 2024 10:00:00 +0000",
) -> dict:
    """A messages.get response in metadata format."""
    return {
        "id": message_id,
        "snippet": snippet,
        "payload": {
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": sender},
                {"name": "Date", "value": date},
            ]
        },
    }


class FakeMailbox:
    """In-memory mailbox speaking the Gmail list/get response shapes.

    Page tokens are string offsets into the listing.
    """

    def __init__(
        self,
        messages: list[dict],
        errors: dict[str, Exception] | None = None,
        list_error: Exception | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.messages = messages
        self.by_id = {m["id"]: m for m in messages if "id" in m}
        self.order = [m.get("id") for m in messages]
        self.errors = errors or {}
        self.list_error = list_error
        self.delays = delays or {}
        self.list_calls: list[tuple[str | None, int]] = []
        self.get_calls: list[str] = []
        self.profile_calls = 0
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight = 0

    def get_profile(self) -> dict:
        self.profile_calls += 1
        return {"emailAddress": "user@example.com"}

    def list_messages(self, query: str, page_token: str | None = None, max_results: int = 100) -> dict:
        self.list_calls.append((page_token, max_results))
        if self.list_error is not None:
            raise self.list_error
        start = int(page_token or 0)
        ids = self.order[start : start + max_results]
        resp: dict = {"messages": [{"id": i} for i in ids]}
        if start + len(ids) < len(self.order):
            resp["nextPageToken"] = str(start + len(ids))
        return resp

    def get_message(self, message_id: str) -> dict:
        with self._lock:
            self.get_calls.append(message_id)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if message_id in self.delays:
                time.sleep(self.delays[message_id])
            if message_id in self.errors:
                raise self.errors[message_id]
            return self.by_id[message_id]
        finally:
            with self._lock:
                self._in_flight -= 1


class FakeRefresher:
    def __init__(self, token: str = "refreshed-token", expires_in: int | None = 3600, error: Exception | None = None):
        self.token = token
        self.expires_in = expires_in
        self.error = error
        self.calls: list[str] = []

    def fetch_access_token(self, refresh_token: str) -> tuple[str, int | None]:
        self.calls.append(refresh_token)
        if self.error is not None:
            raise self.error
        return self.token, self.expires_in


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def retry(sleeps: list[float]) -> RetryPolicy:
    return RetryPolicy(sleep=sleeps.append)


@pytest.fixture
def store(tmp_path):
    with SubscriptionStore(db_path=tmp_path / "subscriptions.db") as s:
        yield s


@pytest.fixture
def refresher() -> FakeRefresher:
    return FakeRefresher()


@pytest.fixture
def netflix_message() -> dict:
    return make_message(
        "msg_nf_001",
        "Your Netflix subscription receipt — $15.99",
        "Netflix <billing@netflix.com>",
    )


@pytest.fixture
def make_context(store, refresher, retry, clock):
    """Build a ScanContext around a fake mailbox."""

    def _make(mailbox: FakeMailbox, **kwargs) -> ScanContext:
        kwargs.setdefault("refresher", refresher)
        return ScanContext(
            store=store,
            mailbox_factory=lambda guard, timeout: mailbox,
            retry=retry,
            clock=clock,
            **kwargs,
        )

    return _make
