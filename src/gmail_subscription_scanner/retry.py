"""Exponential-backoff retry for outbound calls."""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Callable, TypeVar

import httplib2
from googleapiclient.errors import HttpError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .constants import RETRY_ATTEMPTS, RETRYABLE_STATUS_CODES

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_http_error(exc: BaseException) -> bool:
    """Rate limits, server errors and transport failures (DNS, TLS, resets,
    timeouts)."""
    if isinstance(exc, HttpError):
        return exc.resp.status in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httplib2.HttpLib2Error, OSError))


def is_transient_store_error(exc: BaseException) -> bool:
    """SQLite lock contention; anything else is a real failure."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


class RetryPolicy:
    """Retry a callable up to ``attempts`` times, sleeping ``2 ** n`` seconds
    after the n-th failed attempt.

    The last exception propagates unchanged once the attempts run out.
    ``sleep`` is injectable so tests don't wait.
    """

    def __init__(
        self,
        attempts: int = RETRY_ATTEMPTS,
        retry_on: Callable[[BaseException], bool] = is_retryable_http_error,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.attempts = attempts
        self.retry_on = retry_on
        self.sleep = sleep

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception(self.retry_on),
            wait=wait_exponential(multiplier=2, exp_base=2),
            stop=stop_after_attempt(self.attempts),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        return self._retrying()(fn, *args, **kwargs)

    def with_predicate(self, retry_on: Callable[[BaseException], bool]) -> RetryPolicy:
        """Return a copy of this policy that retries on a different predicate."""
        return RetryPolicy(attempts=self.attempts, retry_on=retry_on, sleep=self.sleep)
