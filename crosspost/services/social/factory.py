# crosspost/services/social/factory.py
from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import requests

from ...config import PublishingSettings
from ...constants.platforms import (
    PLATFORM_FACEBOOK,
    PLATFORM_INSTAGRAM,
    PLATFORM_TIKTOK,
    PLATFORM_WORDPRESS,
    PLATFORM_YOUTUBE,
    PLATFORM_ZALO,
)
from ...utils.helpers import make_log_tag
from ...utils.logger import Log
from .adapters import (
    FacebookAdapter,
    InstagramAdapter,
    TikTokAdapter,
    WordPressAdapter,
    YouTubeAdapter,
    ZaloAdapter,
)
from .errors import CredentialNotFoundError, UnsupportedPlatformError, error_from_exception
from .http import new_session
from .tokens import (
    FacebookTokenManager,
    InstagramTokenManager,
    TikTokTokenManager,
    WordPressTokenManager,
    YouTubeTokenManager,
    ZaloTokenManager,
)
from .types import PublishRequest, PublishResult

# platform -> (token manager class, adapter class)
PLATFORM_REGISTRY: Dict[str, Tuple[type, type]] = {
    PLATFORM_INSTAGRAM: (InstagramTokenManager, InstagramAdapter),
    PLATFORM_FACEBOOK: (FacebookTokenManager, FacebookAdapter),
    PLATFORM_YOUTUBE: (YouTubeTokenManager, YouTubeAdapter),
    PLATFORM_WORDPRESS: (WordPressTokenManager, WordPressAdapter),
    PLATFORM_TIKTOK: (TikTokTokenManager, TikTokAdapter),
    PLATFORM_ZALO: (ZaloTokenManager, ZaloAdapter),
}

STATUS_PUBLISHED = "published"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


def normalise_platform(platform: str) -> str:
    return (platform or "").strip().lower()


class AdapterFactory:
    """
    platform + user -> adapter wired to that user's token manager.

    Each call builds fresh objects; nothing is shared between jobs except the
    credential store and the lock factory.
    """

    def __init__(
        self,
        *,
        store,
        settings: Optional[PublishingSettings] = None,
        lock_factory=None,
        session_factory: Callable[[], requests.Session] = new_session,
        clock=None,
        sleep: Callable[[float], None] = time.sleep,
        registry: Optional[Dict[str, Tuple[type, type]]] = None,
    ):
        self.store = store
        self.settings = settings or PublishingSettings()
        self.lock_factory = lock_factory
        self.session_factory = session_factory
        self.clock = clock
        self.sleep = sleep
        self.registry = dict(registry or PLATFORM_REGISTRY)

    def supported_platforms(self) -> List[str]:
        return sorted(self.registry.keys())

    def is_supported(self, platform: str) -> bool:
        return normalise_platform(platform) in self.registry

    def _entry(self, platform: str) -> Tuple[type, type]:
        key = normalise_platform(platform)
        if key not in self.registry:
            raise UnsupportedPlatformError(f"Unsupported platform: {platform}", code="unsupported_platform")
        return self.registry[key]

    def create_token_manager(self, platform: str, user_id: str, *, http: Optional[requests.Session] = None):
        manager_cls, _ = self._entry(platform)
        key = normalise_platform(platform)
        credential = self.store.get(str(user_id), key)
        if credential is None:
            raise CredentialNotFoundError(f"No {key} credential for user {user_id}; connect the platform first")
        return manager_cls(
            credential,
            store=self.store,
            settings=self.settings,
            http=http or self.session_factory(),
            clock=self.clock,
            lock_factory=self.lock_factory,
        )

    def create(self, platform: str, user_id: str):
        _, adapter_cls = self._entry(platform)
        http = self.session_factory()
        tokens = self.create_token_manager(platform, user_id, http=http)
        return adapter_cls(tokens, settings=self.settings, http=http, sleep=self.sleep)


def overall_status(results: Dict[str, PublishResult]) -> str:
    successes = sum(1 for r in results.values() if r.success)
    if results and successes == len(results):
        return STATUS_PUBLISHED
    if successes:
        return STATUS_PARTIAL
    return STATUS_FAILED


def publish_to_platforms(factory: AdapterFactory, user_id: str, request: PublishRequest,
                         platforms: Optional[Iterable[str]] = None) -> Dict[str, object]:
    """
    Direct (non-queued) fan-out. One platform failing never stops the others;
    the caller gets a result per platform plus an overall status.
    """
    targets = [normalise_platform(p) for p in (platforms or request.platforms)]
    log_tag = make_log_tag("factory.py", "publish_to_platforms", "publish", user=user_id)
    results: Dict[str, PublishResult] = {}

    for platform in targets:
        try:
            adapter = factory.create(platform, user_id)
            results[platform] = adapter.publish(request)
        except Exception as e:
            results[platform] = PublishResult.from_error(error_from_exception(e), platform=platform)

        r = results[platform]
        Log.info(f"{log_tag}[platform:{platform}] success={r.success} error={r.error}")

    return {
        "status": overall_status(results),
        "results": {p: r.to_dict() for p, r in results.items()},
    }
