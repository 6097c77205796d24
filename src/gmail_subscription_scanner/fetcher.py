"""Paginated listing and batched metadata fetching against the mailbox."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from itertools import islice
from typing import Callable, Iterable, Iterator

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from .auth import utcnow
from .constants import FETCH_BATCH_SIZE, MAX_MESSAGES, PAGE_SIZE
from .errors import AuthExpired, ExtractionError, FetchError
from .extractor import DEFAULT_HEURISTICS, Heuristics, extract_candidate
from .gmail_client import Mailbox, parse_message
from .models import MessageDetail, MessageRef, SubscriptionCandidate
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def call_mailbox(retry: RetryPolicy, what: str, fn: Callable, *args, **kwargs):
    """Run a mailbox call under ``retry`` and classify the final failure.

    A 401 means the token was revoked mid-scan and raises AuthExpired;
    everything else that survives the retries raises FetchError.
    """
    try:
        return retry.call(fn, *args, **kwargs)
    except AuthExpired:
        raise
    except RefreshError as exc:
        raise AuthExpired(f"Gmail rejected the access token while {what}: {exc}") from exc
    except HttpError as exc:
        if exc.resp.status == 401:
            raise AuthExpired(f"Gmail rejected the access token while {what}") from exc
        raise FetchError(f"Gmail API error while {what}: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        raise FetchError(f"Failed {what}: {exc}") from exc


class PageFetcher:
    """Lists message IDs page by page, stopping at ``max_messages``."""

    def __init__(
        self,
        mailbox: Mailbox,
        retry: RetryPolicy,
        max_messages: int = MAX_MESSAGES,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.mailbox = mailbox
        self.retry = retry
        self.max_messages = max_messages
        self.page_size = page_size

    def list_messages(self, query: str) -> Iterator[MessageRef]:
        """Yield message refs in listing order.

        The generator fetches the next page only once the previous one is
        consumed.  Raises FetchError (or AuthExpired) from the page that
        failed; refs already yielded stay with the caller.
        """
        page_token: str | None = None
        count = 0
        page_num = 0

        while count < self.max_messages:
            max_results = min(self.page_size, self.max_messages - count)
            resp = call_mailbox(
                self.retry,
                "listing messages",
                self.mailbox.list_messages,
                query,
                page_token,
                max_results,
            )
            page_num += 1
            messages = resp.get("messages", [])
            logger.debug("Page %d: %d messages", page_num, len(messages))

            for msg in messages:
                yield MessageRef(id=msg["id"], page_token=page_token)
                count += 1
                if count >= self.max_messages:
                    logger.info("Reached the %d message limit", self.max_messages)
                    return

            page_token = resp.get("nextPageToken")
            if not page_token:
                break


class BatchExtractor:
    """Fetches message metadata in fixed-size concurrent batches and extracts
    subscription candidates.

    Batches run one after another; within a batch every fetch runs in its
    own worker.  A message that fails to fetch or parse is logged and
    skipped.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        retry: RetryPolicy,
        batch_size: int = FETCH_BATCH_SIZE,
        heuristics: Heuristics = DEFAULT_HEURISTICS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.mailbox = mailbox
        self.retry = retry
        self.batch_size = batch_size
        self.heuristics = heuristics
        self.clock = clock
        self.messages_scanned = 0
        self.messages_failed = 0

    def _fetch_detail(self, ref: MessageRef) -> MessageDetail:
        try:
            response = self.retry.call(self.mailbox.get_message, ref.id)
            return parse_message(response)
        except AuthExpired:
            raise
        except RefreshError as exc:
            raise AuthExpired(f"Gmail rejected the access token while fetching {ref.id}: {exc}") from exc
        except HttpError as exc:
            if exc.resp.status == 401:
                raise AuthExpired(f"Gmail rejected the access token while fetching {ref.id}") from exc
            raise ExtractionError(ref.id, str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(ref.id, str(exc)) from exc

    def _collect(self, batch: list[MessageRef], futures: list[Future]) -> list[MessageDetail | None]:
        """Wait for every fetch in the batch; results keep the batch order."""
        details: list[MessageDetail | None] = []
        for ref, future in zip(batch, futures):
            try:
                details.append(future.result())
            except ExtractionError as exc:
                logger.warning("Skipping message %s: %s", ref.id, exc)
                self.messages_failed += 1
                details.append(None)
        return details

    def _extract(self, detail: MessageDetail) -> SubscriptionCandidate | None:
        try:
            return extract_candidate(detail, detected_at=self.clock(), heuristics=self.heuristics)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Skipping message %s: %s", detail.id, ExtractionError(detail.id, str(exc)))
            self.messages_failed += 1
            return None

    def extract(
        self,
        refs: Iterable[MessageRef],
        callback: Callable[[int, int], None] | None = None,
    ) -> list[SubscriptionCandidate]:
        """Return candidates in the order their messages were listed."""
        self.messages_scanned = 0
        self.messages_failed = 0
        candidates: list[SubscriptionCandidate] = []
        refs_iter = iter(refs)
        batch_num = 0

        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            while True:
                batch = list(islice(refs_iter, self.batch_size))
                if not batch:
                    break
                batch_num += 1

                futures = [executor.submit(self._fetch_detail, ref) for ref in batch]
                details = self._collect(batch, futures)

                for detail in details:
                    if detail is None:
                        continue
                    candidate = self._extract(detail)
                    if candidate is not None:
                        candidates.append(candidate)

                self.messages_scanned += len(batch)
                if callback:
                    callback(batch_num, self.messages_scanned)

        logger.info(
            "Extracted %d candidates from %d messages (%d skipped)",
            len(candidates),
            self.messages_scanned,
            self.messages_failed,
        )
        return candidates
