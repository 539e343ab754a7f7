# crosspost/services/social/tokens/tiktok_token_manager.py
from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_TIKTOK, TIKTOK_API_BASE
from ....models.social.credential import Credential
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import AuthError, ProtocolError, PublishingError
from ..http import bearer_headers, new_session, raise_if_http_error
from ..types import TokenGrant
from .lifecycle import TokenLifecycle


def _raise_if_tiktok_error(data: Dict[str, Any], prefix: str) -> None:
    # TikTok answers 200 with an error object on some failures
    err = data.get("error")
    if isinstance(err, dict):
        code = err.get("code")
        if code and code != "ok":
            raise ProtocolError(f"{prefix}: {err.get('message') or code}", code=code, payload=data)
    elif isinstance(err, str) and err:
        if err in ("invalid_grant", "invalid_client"):
            raise AuthError(f"{prefix}: {data.get('error_description') or err}", code=err, payload=data)
        raise ProtocolError(f"{prefix}: {data.get('error_description') or err}", code=err, payload=data)


class TikTokTokenManager:
    """
    TikTok issues a new refresh token on every refresh and invalidates the
    previous one, so refreshes are serialized per (user, platform).
    """
    platform = PLATFORM_TIKTOK
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
        app = self.settings.app_credentials(PLATFORM_TIKTOK)
        if not app.get("client_key") or not app.get("client_secret"):
            raise AuthError("TIKTOK_CLIENT_KEY / TIKTOK_CLIENT_SECRET are not configured")
        if not credential.refresh_token:
            raise AuthError("TikTok credential has no refresh token")

        r = self.http.post(
            f"{TIKTOK_API_BASE}/v2/oauth/token/",
            data={
                "client_key": app["client_key"],
                "client_secret": app["client_secret"],
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.settings.http_timeout,
        )
        data = raise_if_http_error(r, "TikTok token refresh failed")
        _raise_if_tiktok_error(data, "TikTok token refresh failed")

        body = data.get("data") if isinstance(data.get("data"), dict) else data
        scopes = (body.get("scope") or "").replace(",", " ").split() or None
        return TokenGrant(
            access_token=body.get("access_token"),
            expires_in=int(body.get("expires_in") or 86400),
            refresh_token=body.get("refresh_token"),
            scopes=scopes,
        )

    def verify_auth(self) -> bool:
        log_tag = make_log_tag("tiktok_token_manager.py", "TikTokTokenManager", "verify_auth",
                               user=self.credential.user_id)
        try:
            r = self.http.get(
                f"{TIKTOK_API_BASE}/v2/user/info/",
                params={"fields": "open_id,display_name"},
                headers=bearer_headers(self.valid_access_token()),
                timeout=self.settings.http_timeout,
            )
            data = raise_if_http_error(r, "TikTok verify failed")
            _raise_if_tiktok_error(data, "TikTok verify failed")
            return bool(((data.get("data") or {}).get("user") or {}).get("open_id"))
        except (PublishingError, requests.RequestException) as e:
            Log.info(f"{log_tag} verify failed: {e}")
            return False
