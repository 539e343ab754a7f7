# crosspost/services/social/tokens/zalo_token_manager.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_ZALO, ZALO_OA_API_BASE
from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import AuthError, PublishingError
from ..http import new_session, raise_if_http_error
from ..types import TokenGrant
from .lifecycle import TokenLifecycle


class ZaloTokenManager:
    """Zalo Official Account token supplied at connect time; refreshing is not offered."""
    platform = PLATFORM_ZALO
    rotates_refresh_token = False

    def __init__(self, credential: Credential, *, store=None, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, clock=None, lock_factory=None):
        self.settings = settings or PublishingSettings()
        self.http = http or new_session()
        self.lifecycle = TokenLifecycle(
            credential,
            store=store,
            refresher=self._refresh_grant,
            buffer_seconds=self.settings.token_buffer_seconds,
            clock=clock,
            lock_factory=lock_factory,
        )

    @property
    def credential(self) -> Credential:
        return self.lifecycle.credential

    def get_access_token(self) -> str:
        return self.lifecycle.current_token()

    def is_expired(self) -> bool:
        return self.lifecycle.is_expired()

    def valid_access_token(self) -> str:
        return self.lifecycle.valid_access_token()

    def force_refresh(self) -> TokenGrant:
        return self.lifecycle.force_refresh()

    def refresh(self) -> TokenGrant:
        return self._refresh_grant(self.credential)

    def _refresh_grant(self, credential: Credential) -> TokenGrant:
        raise AuthError("Zalo token refresh is not supported; reconnect the Official Account")

    def verify_auth(self) -> bool:
        log_tag = make_log_tag("zalo_token_manager.py", "ZaloTokenManager", "verify_auth",
                               user=self.credential.user_id)
        token = self.get_access_token()
        if not token:
            return False
        try:
            r = self.http.get(
                f"{ZALO_OA_API_BASE}/v2.0/oa/getoa",
                headers={"access_token": token},
                timeout=self.settings.http_timeout,
            )
            data = raise_if_http_error(r, "Zalo verify failed")
            return int(data.get("error") or 0) == 0
        except (PublishingError, requests.RequestException, ValueError) as e:
            Log.info(f"{log_tag} verify failed: {e}")
            return False
