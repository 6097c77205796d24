"""SQLite subscription store and the batched writer that fills it."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable

from .auth import utcnow
from .constants import DB_PATH, UPSERT_BATCH_SIZE
from .errors import StoreError
from .models import SubscriptionCandidate, SubscriptionRecord
from .retry import RetryPolicy, is_transient_store_error

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    type TEXT,
    price TEXT,
    frequency TEXT NOT NULL DEFAULT 'monthly',
    source_message_id TEXT,
    last_detected_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, provider)
);
"""

_UPSERT_SQL = """
INSERT INTO subscriptions (
    user_id, provider, type, price, frequency, source_message_id,
    last_detected_date, created_at, updated_at
) VALUES (
    :user_id, :provider, :type, :price, :frequency, :source_message_id,
    :last_detected_date, :created_at, :updated_at
)
ON CONFLICT (user_id, provider) DO UPDATE SET
    type = excluded.type,
    price = excluded.price,
    frequency = excluded.frequency,
    source_message_id = excluded.source_message_id,
    last_detected_date = excluded.last_detected_date,
    updated_at = excluded.updated_at
"""


def _row_to_record(row: sqlite3.Row) -> SubscriptionRecord:
    return SubscriptionRecord(
        user_id=row["user_id"],
        provider=row["provider"],
        price=Decimal(row["price"]) if row["price"] is not None else None,
        frequency=row["frequency"],
        last_detected_date=row["last_detected_date"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        type=row["type"],
        source_message_id=row["source_message_id"] or "",
    )


class SubscriptionStore:
    """Persistent SQLite store holding one row per (user_id, provider)."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DB_PATH
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(_CREATE_TABLES_SQL)

    # --- public API ---

    def upsert_batch(self, rows: list[dict]) -> None:
        """Insert or update rows in a single transaction.

        On a (user_id, provider) conflict everything but created_at is
        overwritten.
        """
        with self._conn:
            self._conn.executemany(_UPSERT_SQL, rows)

    def get(self, user_id: str, provider: str) -> SubscriptionRecord | None:
        row = self._conn.execute(
            "SELECT * FROM subscriptions WHERE user_id = ? AND provider = ?",
            (user_id, provider),
        ).fetchone()
        return _row_to_record(row) if row else None

    def get_many(self, user_id: str, providers: Iterable[str]) -> dict[str, SubscriptionRecord]:
        """Return stored records for ``providers``, keyed by provider."""
        providers = list(providers)
        if not providers:
            return {}
        placeholders = ", ".join("?" for _ in providers)
        rows = self._conn.execute(
            f"SELECT * FROM subscriptions WHERE user_id = ? AND provider IN ({placeholders})",
            (user_id, *providers),
        ).fetchall()
        return {r["provider"]: _row_to_record(r) for r in rows}

    def list_for_user(self, user_id: str) -> list[SubscriptionRecord]:
        rows = self._conn.execute(
            "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY provider",
            (user_id,),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def get_info(self) -> dict:
        """Return store statistics."""
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0

        counts = self._conn.execute(
            "SELECT COUNT(*) AS c, COUNT(DISTINCT user_id) AS u, MAX(updated_at) AS last "
            "FROM subscriptions"
        ).fetchone()

        return {
            "db_file_size": file_size,
            "subscription_count": counts["c"],
            "user_count": counts["u"],
            "last_updated": counts["last"],
        }

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> SubscriptionStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()


class PersistenceWriter:
    """Writes candidates to the store in fixed-size batches.

    Batches are not wrapped in one transaction: when batch N fails,
    batches before it stay written and the rest are not attempted.  A
    failing batch is retried verbatim on lock contention; the conflict-key
    upsert makes that safe.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        retry: RetryPolicy | None = None,
        batch_size: int = UPSERT_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.retry = retry.with_predicate(is_transient_store_error) if retry else None
        self.batch_size = batch_size
        self.clock = clock

    @staticmethod
    def _row(user_id: str, candidate: SubscriptionCandidate, now: str) -> dict:
        return {
            "user_id": user_id,
            "provider": candidate.provider,
            "type": candidate.type,
            "price": str(candidate.price) if candidate.price is not None else None,
            "frequency": candidate.frequency,
            "source_message_id": candidate.source_message_id,
            "last_detected_date": candidate.detected_at.isoformat(),
            "created_at": now,
            "updated_at": now,
        }

    def upsert(self, user_id: str, candidates: list[SubscriptionCandidate]) -> int:
        """Store candidates for ``user_id``; return how many rows were written."""
        now = self.clock().isoformat()
        rows = [self._row(user_id, c, now) for c in candidates]
        written = 0

        for batch_num, start in enumerate(range(0, len(rows), self.batch_size), start=1):
            batch = rows[start : start + self.batch_size]
            try:
                if self.retry:
                    self.retry.call(self.store.upsert_batch, batch)
                else:
                    self.store.upsert_batch(batch)
            except sqlite3.Error as exc:
                logger.error("Subscription batch %d failed after %d rows written", batch_num, written)
                raise StoreError(f"Failed to store subscription batch {batch_num}: {exc}") from exc
            written += len(batch)

        logger.info("Stored %d subscriptions for user %s", written, user_id)
        return written
