"""Tests for token refresh handling."""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from conftest import FakeRefresher
from gmail_subscription_scanner.auth import GoogleTokenRefresher, TokenGuard, check_auth, load_client_config
from gmail_subscription_scanner.errors import AuthExpired
from gmail_subscription_scanner.models import AccessToken


def test_valid_token_untouched(clock, refresher):
    token = AccessToken("live", expires_at=clock() + timedelta(hours=1), refresh_token="r1")
    guard = TokenGuard(token, refresher, clock=clock)
    assert guard.ensure_valid(token) is token
    assert refresher.calls == []


def test_expired_token_is_refreshed(clock, refresher):
    token = AccessToken("stale", expires_at=clock() - timedelta(minutes=5), refresh_token="r1")
    guard = TokenGuard(token, refresher, clock=clock)
    new = guard.ensure_valid(token)
    assert new.value == "refreshed-token"
    assert new.refresh_token == "r1"
    assert new.expires_at == clock() + timedelta(seconds=3600)
    assert refresher.calls == ["r1"]


def test_missing_expires_in_defaults_to_an_hour(clock):
    refresher = FakeRefresher(expires_in=None)
    token = AccessToken("stale", expires_at=None, refresh_token="r1")
    new = TokenGuard(token, refresher, clock=clock).ensure_valid(token)
    assert new.expires_at == clock() + timedelta(seconds=3600)


def test_provided_expires_in_is_used(clock):
    refresher = FakeRefresher(expires_in=1800)
    token = AccessToken("stale", expires_at=None, refresh_token="r1")
    new = TokenGuard(token, refresher, clock=clock).ensure_valid(token)
    assert new.expires_at == clock() + timedelta(seconds=1800)


def test_absent_expiry_counts_as_expired(clock, refresher):
    guard = TokenGuard(AccessToken("t"), refresher, clock=clock)
    assert guard.is_expired(AccessToken("t", expires_at=None))


def test_refreshes_inside_margin(clock, refresher):
    token = AccessToken("soon", expires_at=clock() + timedelta(seconds=30), refresh_token="r1")
    guard = TokenGuard(token, refresher, refresh_margin=60, clock=clock)
    assert guard.ensure_valid(token).value == "refreshed-token"


def test_naive_expiry_treated_as_utc(clock, refresher):
    expires = (clock() + timedelta(hours=1)).replace(tzinfo=None)
    token = AccessToken("live", expires_at=expires, refresh_token="r1")
    assert not TokenGuard(token, refresher, clock=clock).is_expired(token)


def test_expired_without_refresh_token(clock, refresher):
    token = AccessToken("stale", expires_at=clock() - timedelta(minutes=1))
    with pytest.raises(AuthExpired):
        TokenGuard(token, refresher, clock=clock).ensure_valid(token)
    assert refresher.calls == []


def test_refresh_failure_raises_auth_expired(clock):
    refresher = FakeRefresher(error=ConnectionError("network down"))
    token = AccessToken("stale", expires_at=None, refresh_token="r1")
    with pytest.raises(AuthExpired, match="network down"):
        TokenGuard(token, refresher, clock=clock).ensure_valid(token)
    assert refresher.calls == ["r1"]


def test_rejected_refresh_token(clock):
    refresher = FakeRefresher(error=AuthExpired("invalid_grant"))
    token = AccessToken("stale", expires_at=None, refresh_token="revoked")
    with pytest.raises(AuthExpired, match="invalid_grant"):
        TokenGuard(token, refresher, clock=clock).ensure_valid(token)


def test_current_refreshes_once_across_threads(clock, refresher):
    guard = TokenGuard(AccessToken("stale", expires_at=None, refresh_token="r1"), refresher, clock=clock)
    with ThreadPoolExecutor(max_workers=10) as executor:
        values = list(executor.map(lambda _: guard.current(), range(20)))
    assert set(values) == {"refreshed-token"}
    assert refresher.calls == ["r1"]
    assert guard.token.value == "refreshed-token"


def test_load_client_config_installed_layout(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({"installed": {"client_id": "cid", "client_secret": "secret"}}))
    config = load_client_config(path)
    assert config["client_id"] == "cid"
    assert config["client_secret"] == "secret"
    assert config["token_uri"] == "https://oauth2.googleapis.com/token"

    refresher = GoogleTokenRefresher.from_client_secrets_file(path)
    assert refresher.client_id == "cid"


def test_load_client_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="Credentials file not found"):
        load_client_config(tmp_path / "missing.json")


def test_load_client_config_malformed_file(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text("{not json")
    with pytest.raises(ValueError, match="not a valid OAuth client secrets file"):
        load_client_config(path)

    path.write_text(json.dumps({"installed": {"client_id": "cid"}}))
    with pytest.raises(ValueError, match="not a valid OAuth client secrets file"):
        load_client_config(path)


def test_check_auth_reports_malformed_file(tmp_path, capsys):
    path = tmp_path / "credentials.json"
    path.write_text("[]")
    assert check_auth("r1", credentials_path=path) is False
    assert "Authentication failed" in capsys.readouterr().out
