# crosspost/services/social/tokens/lifecycle.py
from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timedelta
from typing import Callable, ContextManager, Optional

from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag, mask_token
from ....utils.logger import Log
from ....utils.social.token_utils import (
    expires_at_from,
    is_token_expired,
    is_token_expiring_soon,
    utcnow,
)
from ..errors import AuthError, PublishingError, TransientError
from ..types import TokenGrant

Clock = Callable[[], datetime]
LockFactory = Callable[[str, str], ContextManager]


class TokenLifecycle:
    """
    Caching, expiry buffering and persistence shared by every platform token
    manager. Managers own one instance and hand it their platform-specific
    `refresher`; nothing is inherited.

    Cache rule: a cached token is served with no network call while
    now < cached_expiry, where cached_expiry = expires_at - buffer.
    Otherwise the refresher runs and the result is persisted and re-cached.

    When `rotating` is set the refresh runs under a per-(user, platform) lock
    and the credential is re-read from the store first, so a refresh token
    already rotated by another worker is never replayed.
    """

    def __init__(
        self,
        credential: Credential,
        *,
        store,
        refresher: Callable[[Credential], TokenGrant],
        buffer_seconds: int = 300,
        clock: Optional[Clock] = None,
        lock_factory: Optional[LockFactory] = None,
        rotating: bool = False,
    ):
        self.credential = credential
        self.store = store
        self.refresher = refresher
        self.buffer = timedelta(seconds=buffer_seconds)
        self.clock = clock or utcnow
        self.lock_factory = lock_factory
        self.rotating = rotating

        self._cached_token: Optional[str] = None
        self._cached_expiry: Optional[datetime] = None
        self._has_cache = False
        self._mutex = threading.Lock()

        self.log_tag = make_log_tag(
            "lifecycle.py", "TokenLifecycle", credential.platform,
            user=credential.user_id, platform=credential.platform,
        )

    # -------------------------------------------------
    # Pure reads
    # -------------------------------------------------
    def current_token(self) -> str:
        if self._has_cache and self._cached_token:
            return self._cached_token
        return self.credential.access_token

    def is_expired(self) -> bool:
        return is_token_expired(self.credential.expires_at, now=self.clock())

    def needs_refresh(self, credential: Optional[Credential] = None) -> bool:
        return is_token_expiring_soon(
            (credential or self.credential).expires_at,
            buffer_seconds=int(self.buffer.total_seconds()),
            now=self.clock(),
        )

    # -------------------------------------------------
    # Cached access
    # -------------------------------------------------
    def valid_access_token(self) -> str:
        with self._mutex:
            if self._cache_is_fresh():
                return self._cached_token

            if not self.needs_refresh():
                self._remember(self.credential.access_token, self.credential.expires_at)
                return self.credential.access_token

        return self.force_refresh().access_token

    def force_refresh(self) -> TokenGrant:
        """Refresh now, persist, re-cache. Locked for rotating platforms."""
        lock_cm = self._lock() if self.rotating else nullcontext()
        with lock_cm:
            if self.rotating and self.store is not None:
                latest = self.store.get(self.credential.user_id, self.credential.platform)
                if latest is not None:
                    if latest.token_version > self.credential.token_version and not self.needs_refresh(latest):
                        # another worker rotated while we waited on the lock
                        Log.info(f"{self.log_tag} adopting token refreshed by another worker")
                        self.credential = latest
                        self._remember(latest.access_token, latest.expires_at)
                        return TokenGrant(
                            access_token=latest.access_token,
                            expires_in=self._seconds_left(latest.expires_at),
                            refresh_token=latest.refresh_token,
                        )
                    self.credential = latest

            grant = self._run_refresher()
            self._persist(grant)
            return grant

    # -------------------------------------------------
    # Internals
    # -------------------------------------------------
    def _cache_is_fresh(self) -> bool:
        if not self._has_cache or not self._cached_token:
            return False
        if self._cached_expiry is None:
            return True
        return self.clock() < self._cached_expiry

    def _remember(self, token: str, expires_at: Optional[datetime]) -> None:
        self._cached_token = token
        self._cached_expiry = (expires_at - self.buffer) if expires_at else None
        self._has_cache = True

    def _seconds_left(self, expires_at: Optional[datetime]) -> Optional[int]:
        if expires_at is None:
            return None
        return max(0, int((expires_at - self.clock()).total_seconds()))

    def _run_refresher(self) -> TokenGrant:
        Log.info(f"{self.log_tag} refreshing token {mask_token(self.credential.access_token)}")
        try:
            grant = self.refresher(self.credential)
        except AuthError as e:
            Log.error(f"{self.log_tag} refresh rejected, platform must be reconnected: {e}")
            raise AuthError(
                f"Token refresh failed for {self.credential.platform}; reconnect the platform. ({e.message})",
                code=e.code,
                status=e.status,
            ) from e
        except PublishingError:
            raise
        except Exception as e:
            raise TransientError(f"Token refresh failed for {self.credential.platform}: {e}") from e

        if not grant or not grant.access_token:
            raise AuthError(f"Token refresh for {self.credential.platform} returned no access token")
        return grant

    def _persist(self, grant: TokenGrant) -> None:
        now = self.clock()
        if grant.expires_in is None:
            expires_at = self.credential.expires_at
        else:
            expires_at = expires_at_from(grant.expires_in, now)

        refresh_token = grant.refresh_token or self.credential.refresh_token

        if self.store is not None:
            self.store.update_tokens(
                self.credential.user_id,
                self.credential.platform,
                access_token=grant.access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            )

        self.credential = self.credential.with_tokens(grant.access_token, refresh_token, expires_at)
        with self._mutex:
            self._remember(grant.access_token, expires_at)
        Log.info(
            f"{self.log_tag} token refreshed {mask_token(grant.access_token)} "
            f"expires_at={expires_at.isoformat() if expires_at else 'never'}"
        )

    @contextmanager
    def _lock(self):
        if self.lock_factory is None:
            yield
            return
        with self.lock_factory(self.credential.user_id, self.credential.platform):
            yield
