"""
Tests for the shared token lifecycle: caching, buffered expiry, locked
rotation and atomic persistence.
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from crosspost.models.social.credential import Credential, CredentialStore
from crosspost.services.social.errors import AuthError, TransientError
from crosspost.services.social.tokens.lifecycle import TokenLifecycle
from crosspost.services.social.tokens.locks import LocalTokenLocks, token_lock_key
from crosspost.services.social.types import TokenGrant
from crosspost.utils.crypt import decrypt_data

from .conftest import T0, CountingLocks


class CountingRefresher:
    def __init__(self, expires_in=3600, rotate=False):
        self.calls = 0
        self.expires_in = expires_in
        self.rotate = rotate

    def __call__(self, credential):
        self.calls += 1
        return TokenGrant(
            access_token=f"fresh-{self.calls}",
            expires_in=self.expires_in,
            refresh_token=f"rt-{self.calls}" if self.rotate else None,
        )


def make_credential(expires_at, **kwargs):
    defaults = dict(
        user_id="user-1",
        platform="youtube",
        access_token="stored-token",
        refresh_token="stored-refresh",
        expires_at=expires_at,
    )
    defaults.update(kwargs)
    return Credential(**defaults)


class TestBufferedExpiry:
    """A refresh happens iff now >= expires_at - buffer."""

    def test_no_refresh_well_before_expiry(self, store, clock):
        cred = store.add(make_credential(T0 + timedelta(minutes=10)))
        refresher = CountingRefresher()
        lc = TokenLifecycle(cred, store=store, refresher=refresher, buffer_seconds=300, clock=clock)

        assert lc.valid_access_token() == "stored-token"
        assert refresher.calls == 0
        assert store.token_writes == []

    def test_refresh_exactly_at_buffer_boundary(self, store, clock):
        cred = store.add(make_credential(T0 + timedelta(minutes=10)))
        refresher = CountingRefresher()
        lc = TokenLifecycle(cred, store=store, refresher=refresher, buffer_seconds=300, clock=clock)

        clock.advance(minutes=4, seconds=59)
        assert lc.valid_access_token() == "stored-token"
        assert refresher.calls == 0

        clock.advance(seconds=1)
        assert lc.valid_access_token() == "fresh-1"
        assert refresher.calls == 1

    def test_cached_token_served_without_refresher(self, store, clock):
        cred = store.add(make_credential(T0 - timedelta(minutes=1)))
        refresher = CountingRefresher(expires_in=3600)
        lc = TokenLifecycle(cred, store=store, refresher=refresher, buffer_seconds=300, clock=clock)

        assert lc.valid_access_token() == "fresh-1"
        clock.advance(minutes=30)
        assert lc.valid_access_token() == "fresh-1"
        assert lc.valid_access_token() == "fresh-1"
        assert refresher.calls == 1

    def test_cache_expires_with_buffer(self, store, clock):
        cred = store.add(make_credential(T0 - timedelta(minutes=1)))
        refresher = CountingRefresher(expires_in=600)
        lc = TokenLifecycle(cred, store=store, refresher=refresher, buffer_seconds=300, clock=clock)

        lc.valid_access_token()
        clock.advance(minutes=5)
        assert lc.valid_access_token() == "fresh-2"
        assert refresher.calls == 2

    def test_non_expiring_token_never_refreshes(self, store, clock):
        cred = store.add(make_credential(None, platform="wordpress"))
        refresher = CountingRefresher()
        lc = TokenLifecycle(cred, store=store, refresher=refresher, clock=clock)

        clock.advance(days=3650)
        assert lc.valid_access_token() == "stored-token"
        assert not lc.is_expired()
        assert refresher.calls == 0

    def test_get_access_token_reads_without_refreshing(self, store, clock):
        cred = store.add(make_credential(T0 - timedelta(days=1)))
        refresher = CountingRefresher()
        lc = TokenLifecycle(cred, store=store, refresher=refresher, clock=clock)

        assert lc.current_token() == "stored-token"
        assert lc.is_expired()
        assert refresher.calls == 0


class TestPersistence:
    def test_refresh_writes_both_tokens_once(self, store, clock):
        cred = store.add(make_credential(T0))
        lc = TokenLifecycle(cred, store=store, refresher=CountingRefresher(rotate=True), clock=clock)

        lc.valid_access_token()

        assert store.token_writes == [
            ("user-1", "youtube", "fresh-1", "rt-1", T0 + timedelta(seconds=3600)),
        ]
        assert lc.credential.refresh_token == "rt-1"
        assert lc.credential.expires_at == T0 + timedelta(hours=1)

    def test_missing_refresh_token_keeps_previous(self, store, clock):
        cred = store.add(make_credential(T0))
        lc = TokenLifecycle(cred, store=store, refresher=CountingRefresher(), clock=clock)

        lc.force_refresh()

        assert store.token_writes[0][3] == "stored-refresh"

    def test_grant_without_expiry_keeps_stored_expiry(self, store, clock):
        cred = store.add(make_credential(T0 + timedelta(days=1)))
        lc = TokenLifecycle(cred, store=store, refresher=CountingRefresher(expires_in=None), clock=clock)

        lc.force_refresh()

        assert store.token_writes[0][4] == T0 + timedelta(days=1)


class TestRefreshFailures:
    def test_auth_rejection_asks_for_reconnect(self, store, clock):
        cred = store.add(make_credential(T0))

        def rejected(credential):
            raise AuthError("invalid_grant", code="invalid_grant", status=400)

        lc = TokenLifecycle(cred, store=store, refresher=rejected, clock=clock)

        with pytest.raises(AuthError) as exc:
            lc.valid_access_token()
        assert "reconnect" in exc.value.message
        assert exc.value.code == "invalid_grant"
        assert store.token_writes == []

    def test_unexpected_error_is_transient(self, store, clock):
        cred = store.add(make_credential(T0))

        def boom(credential):
            raise RuntimeError("socket closed")

        lc = TokenLifecycle(cred, store=store, refresher=boom, clock=clock)

        with pytest.raises(TransientError):
            lc.force_refresh()

    def test_empty_grant_is_auth_error(self, store, clock):
        cred = store.add(make_credential(T0))
        lc = TokenLifecycle(cred, store=store, refresher=lambda c: TokenGrant(access_token=""), clock=clock)

        with pytest.raises(AuthError):
            lc.force_refresh()


class TestRotation:
    def test_non_rotating_skips_lock(self, store, clock):
        cred = store.add(make_credential(T0))
        locks = CountingLocks()
        lc = TokenLifecycle(cred, store=store, refresher=CountingRefresher(), clock=clock,
                            lock_factory=locks, rotating=False)

        lc.force_refresh()

        assert locks.acquired == []

    def test_rotating_refresh_runs_under_lock(self, store, clock):
        cred = store.add(make_credential(T0, platform="tiktok"))
        locks = CountingLocks()
        lc = TokenLifecycle(cred, store=store, refresher=CountingRefresher(rotate=True), clock=clock,
                            lock_factory=locks, rotating=True)

        lc.force_refresh()

        assert locks.acquired == [("user-1", "tiktok")]

    def test_adopts_token_rotated_by_another_worker(self, store, clock):
        stale = make_credential(T0, platform="tiktok")
        store.add(stale)
        store.update_tokens("user-1", "tiktok", access_token="other-worker",
                            refresh_token="other-rt", expires_at=T0 + timedelta(hours=24))
        refresher = CountingRefresher(rotate=True)
        lc = TokenLifecycle(stale, store=store, refresher=refresher, clock=clock,
                            lock_factory=CountingLocks(), rotating=True)

        assert lc.valid_access_token() == "other-worker"
        assert refresher.calls == 0
        assert lc.credential.refresh_token == "other-rt"

    def test_concurrent_refreshes_rotate_once(self, store, clock):
        cred = store.add(make_credential(T0, platform="tiktok"))
        refresher = CountingRefresher(rotate=True, expires_in=86400)
        locks = LocalTokenLocks()
        managers = [
            TokenLifecycle(cred, store=store, refresher=refresher, clock=clock,
                           lock_factory=locks, rotating=True)
            for _ in range(4)
        ]
        tokens = []
        threads = [threading.Thread(target=lambda m=m: tokens.append(m.valid_access_token())) for m in managers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert refresher.calls == 1
        assert tokens == ["fresh-1"] * 4
        assert len(store.token_writes) == 1

    def test_lock_key_is_scoped_per_user_and_platform(self):
        assert token_lock_key("u1", "tiktok") != token_lock_key("u2", "tiktok")
        assert token_lock_key("u1", "tiktok") != token_lock_key("u1", "facebook")


class TestCredentialStore:
    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def mongo_store(self, collection):
        database = MagicMock()
        database.__getitem__.return_value = collection
        return CredentialStore(database)

    def test_update_tokens_is_one_atomic_write(self, mongo_store, collection):
        mongo_store.update_tokens("user-1", "tiktok", access_token="a2", refresh_token="r2",
                                  expires_at=T0)

        assert collection.update_one.call_count == 1
        query, update = collection.update_one.call_args[0]
        assert query == {"user__id": "user-1", "platform": "tiktok"}
        assert decrypt_data(update["$set"]["access_token"]) == "a2"
        assert decrypt_data(update["$set"]["refresh_token"]) == "r2"
        assert update["$set"]["expires_at"] == T0
        assert update["$inc"] == {"token_version": 1}
        assert update["$push"]["refresh_history"]["$slice"] == -CredentialStore.HISTORY_LIMIT

    def test_update_tokens_without_refresh_token_leaves_it(self, mongo_store, collection):
        mongo_store.update_tokens("user-1", "instagram", access_token="a2", refresh_token=None,
                                  expires_at=T0)

        update = collection.update_one.call_args[0][1]
        assert "refresh_token" not in update["$set"]

    def test_get_decrypts_tokens(self, mongo_store, collection):
        from crosspost.utils.crypt import encrypt_data

        collection.find_one.return_value = {
            "user__id": "user-1",
            "platform": "youtube",
            "access_token": encrypt_data("plain-access"),
            "refresh_token": encrypt_data("plain-refresh"),
            "expires_at": T0,
            "token_version": 4,
        }

        cred = mongo_store.get("user-1", "youtube")

        assert cred.access_token == "plain-access"
        assert cred.refresh_token == "plain-refresh"
        assert cred.token_version == 4

    def test_get_missing_returns_none(self, mongo_store, collection):
        collection.find_one.return_value = None
        assert mongo_store.get("user-1", "youtube") is None

    def test_list_expiring_filters_on_expiry(self, mongo_store, collection):
        collection.find.return_value = []
        mongo_store.list_expiring("instagram", T0)

        query = collection.find.call_args[0][0]
        assert query == {"platform": "instagram", "expires_at": {"$ne": None, "$lte": T0}}
