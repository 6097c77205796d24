"""Gmail API client for listing and reading messages."""

from __future__ import annotations

import re
import threading
from typing import Protocol

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import Resource, build

from .auth import TokenGuard
from .constants import METADATA_HEADERS, PAGE_SIZE, REQUEST_TIMEOUT
from .models import MessageDetail

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")


class Mailbox(Protocol):
    """Read-only mailbox calls the scanner needs."""

    def get_profile(self) -> dict: ...

    def list_messages(self, query: str, page_token: str | None = None, max_results: int = PAGE_SIZE) -> dict: ...

    def get_message(self, message_id: str) -> dict: ...


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def parse_message(response: dict) -> MessageDetail:
    """Project a messages.get response (metadata format) onto MessageDetail.

    Raises KeyError when the response has no message ID.
    """
    headers = {}
    for h in response.get("payload", {}).get("headers", []):
        headers[h["name"]] = h["value"]

    return MessageDetail(
        id=response["id"],
        subject=headers.get("Subject", ""),
        sender=headers.get("From", ""),
        date=headers.get("Date", ""),
        snippet=response.get("snippet", ""),
    )


class GmailMailbox:
    """Gmail v1 API access using the guard's current token.

    httplib2 connections are not thread-safe, so each thread gets its own
    service object.  The service is rebuilt whenever the guard hands out a
    refreshed token.
    """

    def __init__(self, guard: TokenGuard, timeout: int = REQUEST_TIMEOUT) -> None:
        self._guard = guard
        self._timeout = timeout
        self._local = threading.local()

    def _service(self) -> Resource:
        token = self._guard.current()
        if getattr(self._local, "token", None) != token:
            # Refreshing is the guard's job; a 401 must surface as HttpError.
            http = AuthorizedHttp(
                Credentials(token=token),
                http=httplib2.Http(timeout=self._timeout),
                refresh_status_codes=(),
            )
            self._local.service = build("gmail", "v1", http=http, cache_discovery=False)
            self._local.token = token
        return self._local.service

    def get_profile(self) -> dict:
        return self._service().users().getProfile(userId="me").execute()

    def list_messages(
        self,
        query: str,
        page_token: str | None = None,
        max_results: int = PAGE_SIZE,
    ) -> dict:
        kwargs: dict = {
            "userId": "me",
            "q": query,
            "maxResults": max_results,
            "fields": "messages/id,nextPageToken",
        }
        if page_token:
            kwargs["pageToken"] = page_token
        return self._service().users().messages().list(**kwargs).execute()

    def get_message(self, message_id: str) -> dict:
        return (
            self._service()
            .users()
            .messages()
            .get(
                userId="me",
                id=message_id,
                format="metadata",
                metadataHeaders=METADATA_HEADERS,
            )
            .execute()
        )
