# crosspost/services/social/tokens/wordpress_token_manager.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_WORDPRESS, WPCOM_API_BASE
from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import AuthError, PublishingError
from ..http import bearer_headers, new_session, raise_if_http_error
from ..types import TokenGrant
from .lifecycle import TokenLifecycle

BOOKKEEPING_EXTENSION_SECONDS = 365 * 24 * 3600


def is_wpcom(credential: Credential) -> bool:
    """WordPress.com / Jetpack sites are addressed by blog id, self-hosted by URL."""
    site_url = (credential.meta or {}).get("site_url") or ""
    return bool(credential.platform_account_id) and "wp-json" not in site_url and not (
        (credential.meta or {}).get("self_hosted")
    )


class WordPressTokenManager:
    """
    WordPress.com / Jetpack tokens do not expire. refresh() only re-confirms
    the token works; when the stored record carries a bookkeeping expiry it is
    pushed out by a year so the daily sweep leaves it alone.
    """
    platform = PLATFORM_WORDPRESS
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
    def site_id(self) -> Optional[str]:
        return self.credential.platform_account_id

    @property
    def site_url(self) -> str:
        return ((self.credential.meta or {}).get("site_url") or "").rstrip("/")

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
        if not self._token_works(credential.access_token):
            raise AuthError("WordPress token is no longer valid; reconnect the site")
        expires_in = BOOKKEEPING_EXTENSION_SECONDS if credential.expires_at else None
        return TokenGrant(access_token=credential.access_token, expires_in=expires_in)

    def verify_auth(self) -> bool:
        return self._token_works(self.get_access_token())

    def _token_works(self, token: str) -> bool:
        log_tag = make_log_tag("wordpress_token_manager.py", "WordPressTokenManager", "verify_auth",
                               user=self.credential.user_id)
        if not token:
            return False
        if is_wpcom(self.credential):
            url = f"{WPCOM_API_BASE}/rest/v1.1/sites/{self.site_id}"
        elif self.site_url:
            url = f"{self.site_url}/wp-json/wp/v2/users/me"
        else:
            Log.info(f"{log_tag} no site id or site url on credential")
            return False
        try:
            r = self.http.get(url, headers=bearer_headers(token), timeout=self.settings.http_timeout)
            raise_if_http_error(r, "WordPress verify failed")
            return True
        except (PublishingError, requests.RequestException) as e:
            Log.info(f"{log_tag} verify failed: {e}")
            return False
