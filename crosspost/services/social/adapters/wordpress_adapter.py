# crosspost/services/social/adapters/wordpress_adapter.py
from __future__ import annotations

import html
from typing import Any, Dict, Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_WORDPRESS, WPCOM_API_BASE
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import ProtocolError, PublishValidationError, error_from_exception
from ..http import bearer_headers, new_session, raise_if_http_error
from ..tokens.wordpress_token_manager import is_wpcom
from ..types import Metrics, PublishRequest, PublishResult

EXCERPT_LENGTH = 160


class WordPressAdapter:
    """
    One authenticated POST per operation.

    WordPress.com / Jetpack:  /rest/v1.1/sites/{blog_id}/posts/new
                              (falls back to /wp/v2/sites/{blog_id}/posts on 404)
    Self-hosted:              {site_url}/wp-json/wp/v2/posts
    """
    platform = PLATFORM_WORDPRESS

    def __init__(self, token_manager, *, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, sleep=None):
        self.tokens = token_manager
        self.settings = settings or PublishingSettings()
        self.http = http or new_session()

    @property
    def wpcom(self) -> bool:
        return is_wpcom(self.tokens.credential)

    @property
    def site_id(self) -> Optional[str]:
        return self.tokens.credential.platform_account_id

    @property
    def site_url(self) -> str:
        return ((self.tokens.credential.meta or {}).get("site_url") or "").rstrip("/")

    def _log_tag(self, method: str) -> str:
        return make_log_tag("wordpress_adapter.py", "WordPressAdapter", method,
                            user=self.tokens.credential.user_id, site=self.site_id or self.site_url)

    # ----------------------------
    # Endpoints
    # ----------------------------
    def _v1_base(self) -> str:
        return f"{WPCOM_API_BASE}/rest/v1.1/sites/{self.site_id}"

    def _v2_base(self) -> str:
        if self.wpcom:
            return f"{WPCOM_API_BASE}/wp/v2/sites/{self.site_id}"
        if not self.site_url:
            raise PublishValidationError("WordPress credential has neither a blog id nor a site url")
        return f"{self.site_url}/wp-json/wp/v2"

    # ----------------------------
    # Payload
    # ----------------------------
    def format_content(self, request: PublishRequest) -> str:
        parts = []
        if request.body:
            parts.append(request.body)
        if not self.wpcom:
            for img in request.images:
                parts.append(f'<img src="{html.escape(img.url, quote=True)}" alt="" />')
        if request.mentions:
            parts.append(" ".join(f"@{m}" for m in request.mentions))
        if request.hashtags:
            parts.append(" ".join(f"#{h}" for h in request.hashtags))
        return "\n\n".join(parts)

    def build_payload(self, request: PublishRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": request.title or "Untitled",
            "content": self.format_content(request),
            "status": "publish",
        }
        if request.body:
            payload["excerpt"] = request.body[:EXCERPT_LENGTH]
        if request.hashtags:
            payload["tags"] = ",".join(request.hashtags)
        if self.wpcom and request.images:
            # v1.1 sideloads these into the media library and attaches them
            payload["media_urls"] = [m.url for m in request.images]
        return payload

    # ----------------------------
    # Contract
    # ----------------------------
    def publish(self, request: PublishRequest) -> PublishResult:
        log_tag = self._log_tag("publish")
        try:
            request.validate()
            if not (request.title or request.body):
                raise PublishValidationError("WordPress posts require a title or body")
            token = self.tokens.valid_access_token()
            payload = self.build_payload(request)

            if self.wpcom:
                r = self.http.post(f"{self._v1_base()}/posts/new", json=payload,
                                   headers=bearer_headers(token), timeout=self.settings.http_timeout)
                if r.status_code == 404:
                    Log.info(f"{log_tag} v1.1 endpoint not found, retrying on wp/v2")
                    r = self._post_v2(f"{self._v2_base()}/posts", payload, token)
            else:
                r = self._post_v2(f"{self._v2_base()}/posts", payload, token)

            data = raise_if_http_error(r, "WordPress publish failed")
            post_id = data.get("ID") or data.get("id")
            if not post_id:
                raise ProtocolError(f"WordPress publish returned no post id: {data}")
            permalink = data.get("URL") or data.get("link") or str(post_id)
            Log.info(f"{log_tag} published post_id={post_id}")
            return PublishResult.ok(str(post_id), permalink, platform=self.platform)
        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{log_tag} publish failed kind={err.kind}: {err.message}")
            return PublishResult.from_error(err, platform=self.platform)

    def update(self, external_id: str, request: PublishRequest) -> PublishResult:
        log_tag = self._log_tag("update")
        try:
            request.validate()
            token = self.tokens.valid_access_token()
            payload = self.build_payload(request)
            if self.wpcom:
                url = f"{self._v1_base()}/posts/{external_id}"
                r = self.http.post(url, json=payload, headers=bearer_headers(token),
                                   timeout=self.settings.http_timeout)
            else:
                r = self._post_v2(f"{self._v2_base()}/posts/{external_id}", payload, token)
            data = raise_if_http_error(r, "WordPress update failed")
            permalink = data.get("URL") or data.get("link") or str(external_id)
            return PublishResult.ok(str(external_id), permalink, platform=self.platform)
        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{log_tag} update failed kind={err.kind}: {err.message}")
            return PublishResult.from_error(err, platform=self.platform)

    def delete(self, external_id: str) -> bool:
        try:
            token = self.tokens.valid_access_token()
            if self.wpcom:
                r = self.http.post(f"{self._v1_base()}/posts/{external_id}/delete",
                                   headers=bearer_headers(token), timeout=self.settings.http_timeout)
            else:
                r = self.http.delete(f"{self._v2_base()}/posts/{external_id}",
                                     headers=bearer_headers(token), timeout=self.settings.http_timeout)
            raise_if_http_error(r, "WordPress delete failed")
            return True
        except Exception as e:
            Log.error(f"{self._log_tag('delete')} {error_from_exception(e).message}")
            return False

    def get_metrics(self, external_id: str) -> Metrics:
        metrics = Metrics()
        try:
            token = self.tokens.valid_access_token()
            if self.wpcom:
                r = self.http.get(f"{self._v1_base()}/posts/{external_id}",
                                  headers=bearer_headers(token), timeout=self.settings.http_timeout)
                data = raise_if_http_error(r, "WordPress metrics failed")
                metrics.comments = int((data.get("discussion") or {}).get("comment_count") or 0)
                metrics.likes = int(data.get("like_count") or 0)
            else:
                r = self.http.get(f"{self._v2_base()}/comments", params={"post": external_id, "per_page": 1},
                                  headers=bearer_headers(token), timeout=self.settings.http_timeout)
                raise_if_http_error(r, "WordPress metrics failed")
                metrics.comments = int(r.headers.get("X-WP-Total") or 0)
            metrics.engagement = metrics.likes + metrics.comments
        except Exception as e:
            Log.info(f"{self._log_tag('get_metrics')} metrics unavailable: {error_from_exception(e).message}")
        return metrics

    def verify_auth(self) -> bool:
        return self.tokens.verify_auth()

    def _post_v2(self, url: str, payload: Dict[str, Any], token: str) -> requests.Response:
        body = dict(payload)
        body.pop("media_urls", None)
        # wp/v2 expects term ids for tags; names travel in the content instead
        body.pop("tags", None)
        return self.http.post(url, json=body, headers=bearer_headers(token), timeout=self.settings.http_timeout)
