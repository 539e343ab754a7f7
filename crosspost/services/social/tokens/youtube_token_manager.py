# crosspost/services/social/tokens/youtube_token_manager.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import GOOGLE_TOKEN_URL, PLATFORM_YOUTUBE, YOUTUBE_API_BASE
from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import AuthError, PublishingError
from ..http import bearer_headers, new_session, raise_if_http_error, safe_json
from ..types import TokenGrant
from .lifecycle import TokenLifecycle


class YouTubeTokenManager:
    """Google OAuth access token (one hour) refreshed with a long-lived refresh token."""
    platform = PLATFORM_YOUTUBE
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
        app = self.settings.app_credentials(PLATFORM_YOUTUBE)
        if not app.get("client_id") or not app.get("client_secret"):
            raise AuthError("YOUTUBE_CLIENT_ID / YOUTUBE_CLIENT_SECRET are not configured")
        if not credential.refresh_token:
            raise AuthError("YouTube credential has no refresh token")

        r = self.http.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": app["client_id"],
                "client_secret": app["client_secret"],
                "refresh_token": credential.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=self.settings.http_timeout,
        )
        data = safe_json(r)
        # invalid_grant comes back as 400; that is a revoked grant, not a bad request
        if r.status_code == 400 and data.get("error") in ("invalid_grant", "unauthorized_client"):
            raise AuthError(f"YouTube token refresh failed: {data.get('error_description') or data.get('error')}",
                            code=data.get("error"), status=400)
        raise_if_http_error(r, "YouTube token refresh failed")

        scopes = (data.get("scope") or "").split() or None
        return TokenGrant(
            access_token=data.get("access_token"),
            expires_in=int(data.get("expires_in") or 3600),
            refresh_token=data.get("refresh_token"),
            scopes=scopes,
        )

    def verify_auth(self) -> bool:
        log_tag = make_log_tag("youtube_token_manager.py", "YouTubeTokenManager", "verify_auth",
                               user=self.credential.user_id)
        try:
            r = self.http.get(
                f"{YOUTUBE_API_BASE}/channels",
                params={"part": "id", "mine": "true"},
                headers=bearer_headers(self.valid_access_token()),
                timeout=self.settings.http_timeout,
            )
            data = raise_if_http_error(r, "YouTube verify failed")
            return bool(data.get("items"))
        except (PublishingError, requests.RequestException) as e:
            Log.info(f"{log_tag} verify failed: {e}")
            return False
