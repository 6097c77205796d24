"""Access-token lifecycle for the Gmail API."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Protocol

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .constants import CREDENTIALS_PATH, DEFAULT_EXPIRES_IN, REFRESH_MARGIN, SCOPES, TOKEN_URI
from .errors import AuthExpired
from .models import AccessToken

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TokenRefresher(Protocol):
    def fetch_access_token(self, refresh_token: str) -> tuple[str, int | None]:
        """Exchange a refresh token for (access token, expires_in seconds)."""


def load_client_config(path: Path | None = None) -> dict:
    """Read client_id/client_secret from an OAuth client secrets file.

    Accepts the "installed" and "web" layouts Google Cloud Console
    downloads, as well as a flat JSON object.  Raises FileNotFoundError
    when the file is missing and ValueError when it is malformed.
    """
    path = Path(path or CREDENTIALS_PATH)
    if not path.exists():
        raise FileNotFoundError(
            f"Credentials file not found at {path}.\n"
            "Download your OAuth client credentials from the Google Cloud Console "
            "and save them as:\n"
            f"  {path}"
        )
    try:
        data = json.loads(path.read_text())
        info = data.get("installed") or data.get("web") or data
        return {
            "client_id": info["client_id"],
            "client_secret": info["client_secret"],
            "token_uri": info.get("token_uri", TOKEN_URI),
        }
    except (json.JSONDecodeError, KeyError, AttributeError, TypeError) as exc:
        raise ValueError(f"Credentials file {path} is not a valid OAuth client secrets file: {exc}") from exc


class GoogleTokenRefresher:
    """Refreshes Gmail access tokens through google-auth."""

    def __init__(self, client_id: str, client_secret: str, token_uri: str = TOKEN_URI) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_uri = token_uri

    @classmethod
    def from_client_secrets_file(cls, path: Path | None = None) -> GoogleTokenRefresher:
        return cls(**load_client_config(path))

    def fetch_access_token(self, refresh_token: str) -> tuple[str, int | None]:
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=SCOPES,
        )
        try:
            creds.refresh(Request())
        except (RefreshError, TransportError) as exc:
            raise AuthExpired(f"Refresh token rejected: {exc}") from exc

        expires_in = None
        if creds.expiry is not None:
            # google-auth reports expiry as naive UTC
            expires_in = int((as_utc(creds.expiry) - utcnow()).total_seconds())
        return creds.token, expires_in


class TokenGuard:
    """Keeps one scan's access token valid, refreshing it before it expires.

    The guard owns the token for the duration of a scan.  Storing a
    refreshed token anywhere is the caller's job; read it back from
    ``guard.token`` afterwards.
    """

    def __init__(
        self,
        token: AccessToken,
        refresher: TokenRefresher,
        refresh_margin: int = REFRESH_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._token = token
        self._refresher = refresher
        self._margin = timedelta(seconds=refresh_margin)
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def token(self) -> AccessToken:
        return self._token

    def is_expired(self, token: AccessToken) -> bool:
        if not token.value or token.expires_at is None:
            return True
        return as_utc(token.expires_at) <= self._clock() + self._margin

    def ensure_valid(self, token: AccessToken) -> AccessToken:
        """Return ``token`` if still valid, otherwise a refreshed copy.

        Raises AuthExpired when there is no refresh token or the refresh
        fails for any reason.  Never retried.
        """
        if not self.is_expired(token):
            return token

        if not token.refresh_token:
            raise AuthExpired("Access token expired and no refresh token is available")

        logger.info("Refreshing Gmail access token")
        try:
            value, expires_in = self._refresher.fetch_access_token(token.refresh_token)
        except AuthExpired:
            raise
        except Exception as exc:  # noqa: BLE001
            raise AuthExpired(f"Token refresh failed: {exc}") from exc

        if not value:
            raise AuthExpired("Token refresh returned no access token")

        expires_in = expires_in or DEFAULT_EXPIRES_IN
        return AccessToken(
            value=value,
            expires_at=self._clock() + timedelta(seconds=expires_in),
            refresh_token=token.refresh_token,
        )

    def current(self) -> str:
        """Return a valid access-token value, refreshing at most once per expiry."""
        with self._lock:
            self._token = self.ensure_valid(self._token)
            return self._token.value


def check_auth(refresh_token: str, credentials_path: Path | None = None) -> bool:
    """Test whether a refresh token can be exchanged for an access token.

    Prints human-readable status messages.
    """
    try:
        refresher = GoogleTokenRefresher.from_client_secrets_file(credentials_path)
        _, expires_in = refresher.fetch_access_token(refresh_token)
        print(f"Refresh token is valid (access token expires in {expires_in or DEFAULT_EXPIRES_IN}s)")
        return True
    except (FileNotFoundError, ValueError) as exc:
        print(f"Authentication failed: {exc}")
        return False
    except AuthExpired as exc:
        print(f"Authentication failed: {exc}")
        return False
