"""Shared pytest fixtures and configuration

Environment is set before anything from crosspost is imported: token
encryption needs SECRET_KEY and the logger needs a writable log directory.
"""

import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-crosspost-0123456789")
os.environ.setdefault("APP_LOG_DIR", tempfile.mkdtemp(prefix="crosspost-logs-"))
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from crosspost.config import PublishingSettings
from crosspost.models.social.credential import Credential
from crosspost.services.social.types import TokenGrant

T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ==================== Fakes ====================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeCredentialStore:
    """In-memory stand-in for CredentialStore with the same method surface."""

    def __init__(self):
        self.records = {}
        self.token_writes = []

    def add(self, credential):
        self.records[(credential.user_id, credential.platform)] = credential
        return credential

    def get(self, user_id, platform):
        cred = self.records.get((str(user_id), platform))
        return replace(cred) if cred else None

    def list_expiring(self, platform, before):
        return [
            replace(c) for (_, p), c in self.records.items()
            if p == platform and c.expires_at is not None and c.expires_at <= before
        ]

    def update_tokens(self, user_id, platform, *, access_token, refresh_token, expires_at):
        self.token_writes.append((user_id, platform, access_token, refresh_token, expires_at))
        current = self.records[(user_id, platform)]
        self.records[(user_id, platform)] = replace(
            current,
            access_token=access_token,
            refresh_token=refresh_token or current.refresh_token,
            expires_at=expires_at,
            token_version=current.token_version + 1,
        )


class FakeTokenManager:
    """Token manager double: a cached, valid token and no network."""

    def __init__(self, credential, token="cached-token"):
        self.credential = credential
        self.token = token
        self.valid_calls = 0
        self.refresh_calls = 0
        self.verify_result = True

    def get_access_token(self):
        return self.token

    def is_expired(self):
        return False

    def valid_access_token(self):
        self.valid_calls += 1
        return self.token

    def refresh(self):
        self.refresh_calls += 1
        return TokenGrant(access_token=self.token, expires_in=3600)

    def force_refresh(self):
        return self.refresh()

    def verify_auth(self):
        return self.verify_result


def make_response(status=200, json_data=None, headers=None, chunks=None, text=""):
    """A requests.Response look-alike."""
    resp = Mock()
    resp.status_code = status
    resp.headers = dict(headers or {})
    resp.text = text
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    if chunks is not None:
        resp.iter_content.side_effect = lambda chunk_size=1: iter(list(chunks))
    resp.close = Mock()
    return resp


class CountingLocks:
    """Lock factory double recording which (user, platform) pairs were locked."""

    def __init__(self):
        self.acquired = []
        self._locks = {}

    def __call__(self, user_id, platform):
        self.acquired.append((user_id, platform))
        return self._locks.setdefault((user_id, platform), threading.Lock())


# ==================== Fixtures ====================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeCredentialStore()


@pytest.fixture
def settings():
    """Settings with every wait set to zero so tests never sleep."""
    return PublishingSettings(
        ig_poll_interval=0,
        yt_upload_backoff_seconds=0,
        yt_processing_poll_seconds=0,
        yt_processing_max_polls=3,
        backoff_seconds=0,
        yt_chunk_bytes=5,
        platform_apps={
            "facebook": {"app_id": "fb-app", "app_secret": "fb-secret"},
            "youtube": {"client_id": "yt-client", "client_secret": "yt-secret"},
            "tiktok": {"client_key": "tt-key", "client_secret": "tt-secret"},
        },
    )


@pytest.fixture
def http():
    return Mock()


@pytest.fixture
def sleeps():
    calls = []
    return calls


@pytest.fixture
def sleep(sleeps):
    return sleeps.append


@pytest.fixture
def instagram_credential():
    return Credential(
        user_id="user-1",
        platform="instagram",
        access_token="ig-token",
        expires_at=T0 + timedelta(days=30),
        platform_account_id="17840000000000001",
    )


@pytest.fixture
def youtube_credential():
    return Credential(
        user_id="user-1",
        platform="youtube",
        access_token="yt-access",
        refresh_token="yt-refresh",
        expires_at=T0 + timedelta(hours=1),
        platform_account_id="UC123",
    )


@pytest.fixture
def wordpress_credential():
    return Credential(
        user_id="user-1",
        platform="wordpress",
        access_token="wp-token",
        platform_account_id="987654",
        meta={"site_url": "https://blog.example.com"},
    )
