# crosspost/services/social/tokens/locks.py
from __future__ import annotations

import threading
from typing import Dict, Tuple

from redis import Redis

LOCK_KEY_PREFIX = "crosspost:token-lock"


def token_lock_key(user_id: str, platform: str) -> str:
    return f"{LOCK_KEY_PREFIX}:{platform}:{user_id}"


class RedisTokenLocks:
    """Cross-process lock per (user, platform) for refresh-token rotation."""

    def __init__(self, connection: Redis, *, timeout: int = 60, blocking_timeout: int = 30):
        self.connection = connection
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def __call__(self, user_id: str, platform: str):
        return self.connection.lock(
            token_lock_key(user_id, platform),
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )


class LocalTokenLocks:
    """In-process variant, used when a worker runs without Redis (tests, direct mode)."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}

    def __call__(self, user_id: str, platform: str):
        with self._guard:
            return self._locks.setdefault((str(user_id), platform), threading.Lock())
