# crosspost/services/social/tokens/instagram_token_manager.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import GRAPH_BASE, INSTAGRAM_GRAPH_BASE, PLATFORM_INSTAGRAM
from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import AuthError, PublishingError
from ..http import new_session, raise_if_graph_error
from ..types import TokenGrant
from .lifecycle import TokenLifecycle


class InstagramTokenManager:
    """
    Long-lived Instagram user token (about 60 days), extended with the
    ig_refresh_token grant. No separate refresh token is issued.
    """
    platform = PLATFORM_INSTAGRAM
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
            rotating=self.rotates_refresh_token,
        )

    @property
    def credential(self) -> Credential:
        return self.lifecycle.credential

    @property
    def ig_user_id(self) -> Optional[str]:
        return self.credential.platform_account_id

    @property
    def graph_base(self) -> str:
        return f"{GRAPH_BASE}/{self.settings.graph_api_version}"

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
        if not credential.access_token:
            raise AuthError("Instagram credential has no access token to refresh")

        r = self.http.get(
            f"{INSTAGRAM_GRAPH_BASE}/refresh_access_token",
            params={"grant_type": "ig_refresh_token", "access_token": credential.access_token},
            timeout=self.settings.http_timeout,
        )
        data = raise_if_graph_error(r, "Instagram token refresh failed")
        return TokenGrant(access_token=data.get("access_token"), expires_in=data.get("expires_in"))

    def verify_auth(self) -> bool:
        log_tag = make_log_tag("instagram_token_manager.py", "InstagramTokenManager", "verify_auth",
                               user=self.credential.user_id)
        if not self.ig_user_id:
            return False
        try:
            r = self.http.get(
                f"{self.graph_base}/{self.ig_user_id}",
                params={"fields": "id,username", "access_token": self.valid_access_token()},
                timeout=self.settings.http_timeout,
            )
            data = raise_if_graph_error(r, "Instagram verify failed")
            return bool(data.get("id"))
        except (PublishingError, requests.RequestException) as e:
            Log.info(f"{log_tag} verify failed: {e}")
            return False
