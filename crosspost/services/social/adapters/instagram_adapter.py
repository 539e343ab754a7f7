# crosspost/services/social/adapters/instagram_adapter.py
from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from ....config import PublishingSettings
from ....constants.platforms import CONTENT_TYPE_REEL, GRAPH_BASE, PLATFORM_INSTAGRAM
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import (
    ProtocolError,
    PublishingError,
    PublishValidationError,
    TransientError,
    UnsupportedOperationError,
    error_from_exception,
)
from ..http import new_session, raise_if_graph_error, safe_json
from ..polling import STATE_FAILED, STATE_PROCESSING, STATE_READY, PollPolicy, poll_until_ready
from ..types import Metrics, PublishRequest, PublishResult, format_caption

CAROUSEL_MIN_ITEMS = 2
CAROUSEL_MAX_ITEMS = 10

# container status_code -> poll state
CONTAINER_STATES = {
    "FINISHED": STATE_READY,
    "PUBLISHED": STATE_READY,
    "ERROR": STATE_FAILED,
    "EXPIRED": STATE_FAILED,
    "IN_PROGRESS": STATE_PROCESSING,
}

# media_publish answers this while the container is still settling
NOT_READY_CODE = 9007
NOT_READY_SUBCODE = 2207027


def _is_not_ready_error(err: PublishingError) -> bool:
    payload = (err.payload or {}).get("error") or {}
    try:
        return int(payload.get("code") or 0) == NOT_READY_CODE or \
            int(payload.get("error_subcode") or 0) == NOT_READY_SUBCODE
    except (TypeError, ValueError):
        return False


class InstagramAdapter:
    """
    Container protocol on the Instagram Graph API:

        POST /{ig-user-id}/media          -> container id      (Created)
        GET  /{container}?fields=status_code                  (Processing -> Ready | Failed)
        POST /{ig-user-id}/media_publish  -> media id          (Published)
        GET  /{media-id}?fields=permalink                     (best effort)

    Carousels create one child container per image, then a CAROUSEL parent
    that lists the children; only the parent is polled and published.
    """
    platform = PLATFORM_INSTAGRAM

    def __init__(self, token_manager, *, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, sleep: Callable[[float], None] = time.sleep):
        self.tokens = token_manager
        self.settings = settings or PublishingSettings()
        self.http = http or new_session()
        self.sleep = sleep

    @property
    def ig_user_id(self) -> Optional[str]:
        return self.tokens.credential.platform_account_id

    @property
    def graph_base(self) -> str:
        return f"{GRAPH_BASE}/{self.settings.graph_api_version}"

    def _log_tag(self, method: str) -> str:
        return make_log_tag("instagram_adapter.py", "InstagramAdapter", method,
                            user=self.tokens.credential.user_id, ig_user=self.ig_user_id)

    # -----------------------------
    # Contract
    # -----------------------------
    def publish(self, request: PublishRequest) -> PublishResult:
        log_tag = self._log_tag("publish")
        try:
            request.validate()
            if not self.ig_user_id:
                raise PublishValidationError("Instagram credential has no business account id")

            caption = format_caption(request, include_mentions=True)

            if request.wants_carousel:
                self.validate_carousel(request)
                token = self.tokens.valid_access_token()
                container_id = self.create_carousel_container(request, caption, token)
                policy = self.image_policy
            elif request.videos:
                token = self.tokens.valid_access_token()
                media_type = "REELS" if request.content_type == CONTENT_TYPE_REEL else "VIDEO"
                container_id = self.create_media_container(
                    token, caption=caption, video_url=request.videos[0].url, media_type=media_type,
                )
                policy = self.video_policy
            elif request.images:
                token = self.tokens.valid_access_token()
                container_id = self.create_media_container(token, caption=caption, image_url=request.images[0].url)
                policy = self.image_policy
            else:
                raise PublishValidationError("Instagram posts require at least one image or video")

            Log.info(f"{log_tag} container created id={container_id}")

            outcome = poll_until_ready(
                lambda: self.get_container_state(container_id, token),
                policy,
                sleep=self.sleep,
                log_tag=f"{log_tag}[container:{container_id}]",
            )
            if outcome.state == STATE_FAILED:
                raise ProtocolError(f"Instagram container processing failed: {outcome.detail}")
            if not outcome.ready:
                raise TransientError(
                    f"Instagram container {container_id} not ready after {outcome.attempts} checks"
                )

            media_id = self.publish_container(container_id, token)
            permalink = self.resolve_permalink(media_id, token)
            Log.info(f"{log_tag} published media_id={media_id} permalink={permalink}")
            return PublishResult.ok(media_id, permalink, platform=self.platform)

        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{log_tag} publish failed kind={err.kind} code={err.code}: {err.message}")
            return PublishResult.from_error(err, platform=self.platform)

    def update(self, external_id: str, request: PublishRequest) -> PublishResult:
        return PublishResult.from_error(
            UnsupportedOperationError("Instagram does not support editing published posts"),
            platform=self.platform,
            external_post_id=external_id,
        )

    def delete(self, external_id: str) -> bool:
        Log.info(f"{self._log_tag('delete')} Instagram API does not support deleting media {external_id}")
        return False

    def get_metrics(self, external_id: str) -> Metrics:
        log_tag = self._log_tag("get_metrics")
        metrics = Metrics()
        try:
            token = self.tokens.valid_access_token()
            r = self.http.get(
                f"{self.graph_base}/{external_id}",
                params={"fields": "like_count,comments_count", "access_token": token},
                timeout=self.settings.http_timeout,
            )
            data = raise_if_graph_error(r, "Instagram metrics failed")
            metrics.likes = int(data.get("like_count") or 0)
            metrics.comments = int(data.get("comments_count") or 0)

            insights = self._insights(external_id, token)
            metrics.views = int(insights.get("views") or 0)
            metrics.shares = int(insights.get("shares") or 0)
            metrics.reach = insights.get("reach")
            metrics.engagement = metrics.likes + metrics.comments + metrics.shares
        except Exception as e:
            Log.info(f"{log_tag} metrics unavailable for {external_id}: {error_from_exception(e).message}")
        return metrics

    def verify_auth(self) -> bool:
        return self.tokens.verify_auth()

    # -----------------------------
    # Protocol steps
    # -----------------------------
    @property
    def image_policy(self) -> PollPolicy:
        return PollPolicy(self.settings.ig_poll_interval, self.settings.ig_image_max_polls)

    @property
    def video_policy(self) -> PollPolicy:
        return PollPolicy(self.settings.ig_poll_interval, self.settings.ig_video_max_polls)

    @staticmethod
    def validate_carousel(request: PublishRequest) -> None:
        count = len(request.media)
        if count < CAROUSEL_MIN_ITEMS or count > CAROUSEL_MAX_ITEMS:
            raise PublishValidationError(
                f"Instagram carousel requires {CAROUSEL_MIN_ITEMS}-{CAROUSEL_MAX_ITEMS} images, got {count}"
            )
        if request.videos:
            raise PublishValidationError("Instagram carousel supports images only")

    def create_media_container(self, token: str, *, caption: str = "", image_url: Optional[str] = None,
                               video_url: Optional[str] = None, media_type: Optional[str] = None,
                               children: Optional[List[str]] = None, is_carousel_item: bool = False) -> str:
        payload: Dict[str, Any] = {"access_token": token}
        if caption:
            payload["caption"] = caption
        if is_carousel_item:
            payload["is_carousel_item"] = "true"
        if image_url:
            payload["image_url"] = image_url
        if video_url:
            payload["video_url"] = video_url
        if media_type:
            payload["media_type"] = media_type
        if children:
            payload["children"] = ",".join(children)

        r = self.http.post(f"{self.graph_base}/{self.ig_user_id}/media", data=payload,
                           timeout=self.settings.http_timeout)
        data = raise_if_graph_error(r, "Instagram container create failed")
        container_id = data.get("id")
        if not container_id:
            raise ProtocolError(f"Instagram container create returned no id: {data}")
        return str(container_id)

    def create_carousel_container(self, request: PublishRequest, caption: str, token: str) -> str:
        children = [
            self.create_media_container(token, image_url=item.url, is_carousel_item=True)
            for item in request.media
        ]
        return self.create_media_container(token, caption=caption, media_type="CAROUSEL", children=children)

    def get_container_state(self, container_id: str, token: str) -> Tuple[str, Any]:
        try:
            r = self.http.get(
                f"{self.graph_base}/{container_id}",
                params={"fields": "status_code,status", "access_token": token},
                timeout=self.settings.http_timeout,
            )
            data = raise_if_graph_error(r, "Instagram container status failed")
        except (TransientError, requests.RequestException) as e:
            # a blip while polling is not a verdict on the container
            Log.info(f"{self._log_tag('get_container_state')} status check failed, still waiting: {e}")
            return STATE_PROCESSING, None

        status_code = (data.get("status_code") or "").upper()
        state = CONTAINER_STATES.get(status_code, STATE_PROCESSING)
        detail = (data.get("status") or status_code) if state == STATE_FAILED else status_code
        return state, detail

    def publish_container(self, container_id: str, token: str) -> str:
        retries = self.settings.ig_publish_not_ready_retries
        for attempt in range(retries + 1):
            r = self.http.post(
                f"{self.graph_base}/{self.ig_user_id}/media_publish",
                data={"creation_id": container_id, "access_token": token},
                timeout=self.settings.http_timeout,
            )
            try:
                data = raise_if_graph_error(r, "Instagram media_publish failed")
            except PublishingError as e:
                if _is_not_ready_error(e) and attempt < retries:
                    self.sleep(self.settings.ig_poll_interval)
                    continue
                raise
            media_id = data.get("id")
            if not media_id:
                raise ProtocolError(f"Instagram media_publish returned no id: {data}")
            return str(media_id)
        raise TransientError(f"Instagram container {container_id} never became publishable")

    def resolve_permalink(self, media_id: str, token: str) -> str:
        try:
            r = self.http.get(
                f"{self.graph_base}/{media_id}",
                params={"fields": "permalink", "access_token": token},
                timeout=self.settings.http_timeout,
            )
            if r.status_code < 400:
                permalink = safe_json(r).get("permalink")
                if permalink:
                    return permalink
        except requests.RequestException as e:
            Log.info(f"{self._log_tag('resolve_permalink')} permalink lookup failed: {e}")
        return media_id

    def _insights(self, media_id: str, token: str) -> Dict[str, Any]:
        r = self.http.get(
            f"{self.graph_base}/{media_id}/insights",
            params={"metric": "reach,views,shares", "access_token": token},
            timeout=self.settings.http_timeout,
        )
        if r.status_code >= 400:
            return {}
        out: Dict[str, Any] = {}
        for row in safe_json(r).get("data") or []:
            values = row.get("values") or [{}]
            out[row.get("name")] = values[0].get("value")
        return out
