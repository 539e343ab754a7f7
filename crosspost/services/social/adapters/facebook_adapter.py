# crosspost/services/social/adapters/facebook_adapter.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import GRAPH_BASE, PLATFORM_FACEBOOK
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import ProtocolError, PublishValidationError, error_from_exception
from ..http import new_session, raise_if_graph_error, safe_json
from ..types import Metrics, PublishRequest, PublishResult, format_caption


class FacebookAdapter:
    """Page posts: a single Graph API call to /{page_id}/feed, or /photos for one image."""
    platform = PLATFORM_FACEBOOK

    def __init__(self, token_manager, *, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, sleep=None):
        self.tokens = token_manager
        self.settings = settings or PublishingSettings()
        self.http = http or new_session()

    @property
    def page_id(self) -> Optional[str]:
        return self.tokens.credential.platform_account_id

    @property
    def graph_base(self) -> str:
        return f"{GRAPH_BASE}/{self.settings.graph_api_version}"

    def _log_tag(self, method: str) -> str:
        return make_log_tag("facebook_adapter.py", "FacebookAdapter", method,
                            user=self.tokens.credential.user_id, page=self.page_id)

    def publish(self, request: PublishRequest) -> PublishResult:
        log_tag = self._log_tag("publish")
        try:
            request.validate()
            if not self.page_id:
                raise PublishValidationError("Facebook credential has no page id")
            if request.videos:
                raise PublishValidationError("Facebook video posts are not supported by this adapter")
            if len(request.images) > 1:
                raise PublishValidationError("Facebook page posts accept at most one image")

            token = self.tokens.valid_access_token()
            message = format_caption(request)

            if request.images:
                r = self.http.post(
                    f"{self.graph_base}/{self.page_id}/photos",
                    data={"url": request.images[0].url, "caption": message, "access_token": token},
                    timeout=self.settings.http_timeout,
                )
            else:
                r = self.http.post(
                    f"{self.graph_base}/{self.page_id}/feed",
                    data={"message": message, "access_token": token},
                    timeout=self.settings.http_timeout,
                )
            data = raise_if_graph_error(r, "Facebook publish failed")
            post_id = data.get("post_id") or data.get("id")
            if not post_id:
                raise ProtocolError(f"Facebook publish returned no id: {data}")

            permalink = self._permalink(str(post_id), token)
            Log.info(f"{log_tag} published post_id={post_id}")
            return PublishResult.ok(str(post_id), permalink, platform=self.platform)
        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{log_tag} publish failed kind={err.kind} code={err.code}: {err.message}")
            return PublishResult.from_error(err, platform=self.platform)

    def update(self, external_id: str, request: PublishRequest) -> PublishResult:
        try:
            request.validate()
            r = self.http.post(
                f"{self.graph_base}/{external_id}",
                data={"message": format_caption(request), "access_token": self.tokens.valid_access_token()},
                timeout=self.settings.http_timeout,
            )
            raise_if_graph_error(r, "Facebook update failed")
            return PublishResult.ok(external_id, platform=self.platform)
        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{self._log_tag('update')} update failed: {err.message}")
            return PublishResult.from_error(err, platform=self.platform)

    def delete(self, external_id: str) -> bool:
        try:
            r = self.http.delete(
                f"{self.graph_base}/{external_id}",
                params={"access_token": self.tokens.valid_access_token()},
                timeout=self.settings.http_timeout,
            )
            return bool(raise_if_graph_error(r, "Facebook delete failed").get("success"))
        except Exception as e:
            Log.error(f"{self._log_tag('delete')} {error_from_exception(e).message}")
            return False

    def get_metrics(self, external_id: str) -> Metrics:
        metrics = Metrics()
        try:
            r = self.http.get(
                f"{self.graph_base}/{external_id}",
                params={
                    "fields": "shares,likes.summary(true).limit(0),comments.summary(true).limit(0)",
                    "access_token": self.tokens.valid_access_token(),
                },
                timeout=self.settings.http_timeout,
            )
            data = raise_if_graph_error(r, "Facebook metrics failed")
            metrics.shares = int((data.get("shares") or {}).get("count") or 0)
            metrics.likes = int(((data.get("likes") or {}).get("summary") or {}).get("total_count") or 0)
            metrics.comments = int(((data.get("comments") or {}).get("summary") or {}).get("total_count") or 0)
            metrics.engagement = metrics.likes + metrics.comments + metrics.shares
        except Exception as e:
            Log.info(f"{self._log_tag('get_metrics')} metrics unavailable: {error_from_exception(e).message}")
        return metrics

    def verify_auth(self) -> bool:
        return self.tokens.verify_auth()

    def _permalink(self, post_id: str, token: str) -> str:
        try:
            r = self.http.get(
                f"{self.graph_base}/{post_id}",
                params={"fields": "permalink_url", "access_token": token},
                timeout=self.settings.http_timeout,
            )
            if r.status_code < 400:
                return safe_json(r).get("permalink_url") or post_id
        except requests.RequestException as e:
            Log.info(f"{self._log_tag('permalink')} lookup failed: {e}")
        return post_id
