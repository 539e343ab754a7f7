# crosspost/services/social/tokens/facebook_token_manager.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import GRAPH_BASE, PLATFORM_FACEBOOK
from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import AuthError, PublishingError
from ..http import new_session, raise_if_graph_error
from ..types import TokenGrant
from .lifecycle import TokenLifecycle

DEFAULT_LONG_LIVED_SECONDS = 5184000  # 60 days


class FacebookTokenManager:
    """
    Page publishing needs a page token, which is derived from a user token.

    refresh() is the two-hop exchange:
      1. fb_exchange_token: stored user token -> fresh long-lived user token
      2. GET /{page_id}?fields=access_token with that user token -> page token

    The page token is the access token; the long-lived user token is kept as
    the refresh token and is replaced on every refresh, so refreshes run under
    the per-(user, platform) lock.
    """
    platform = PLATFORM_FACEBOOK
    rotates_refresh_token = True

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
    def page_id(self) -> Optional[str]:
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
        app = self.settings.app_credentials(PLATFORM_FACEBOOK)
        if not app.get("app_id") or not app.get("app_secret"):
            raise AuthError("FACEBOOK_APP_ID / FACEBOOK_APP_SECRET are not configured")

        user_token = credential.refresh_token or credential.access_token
        if not user_token:
            raise AuthError("Facebook credential has no user token to exchange")
        if not credential.platform_account_id:
            raise AuthError("Facebook credential has no page id")

        # hop 1: long-lived user token
        r = self.http.get(
            f"{self.graph_base}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": app["app_id"],
                "client_secret": app["app_secret"],
                "fb_exchange_token": user_token,
            },
            timeout=self.settings.http_timeout,
        )
        exchanged = raise_if_graph_error(r, "Facebook token exchange failed")
        long_lived = exchanged.get("access_token")
        if not long_lived:
            raise AuthError("Facebook token exchange returned no access_token")
        expires_in = exchanged.get("expires_in") or DEFAULT_LONG_LIVED_SECONDS

        # hop 2: page token
        r = self.http.get(
            f"{self.graph_base}/{credential.platform_account_id}",
            params={"fields": "access_token", "access_token": long_lived},
            timeout=self.settings.http_timeout,
        )
        page = raise_if_graph_error(r, "Facebook page token lookup failed")
        page_token = page.get("access_token")
        if not page_token:
            raise AuthError("Facebook page token lookup returned no access_token; check page permissions")

        return TokenGrant(access_token=page_token, expires_in=int(expires_in), refresh_token=long_lived)

    def verify_auth(self) -> bool:
        log_tag = make_log_tag("facebook_token_manager.py", "FacebookTokenManager", "verify_auth",
                               user=self.credential.user_id)
        if not self.page_id:
            return False
        try:
            r = self.http.get(
                f"{self.graph_base}/{self.page_id}",
                params={"fields": "id,name", "access_token": self.valid_access_token()},
                timeout=self.settings.http_timeout,
            )
            return bool(raise_if_graph_error(r, "Facebook verify failed").get("id"))
        except (PublishingError, requests.RequestException) as e:
            Log.info(f"{log_tag} verify failed: {e}")
            return False
