# crosspost/services/social/adapters/youtube_adapter.py
from __future__ import annotations

import re
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_YOUTUBE, YOUTUBE_API_BASE, YOUTUBE_UPLOAD_URL
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import (
    AuthError,
    ProtocolError,
    PublishValidationError,
    TransientError,
    error_from_exception,
    error_from_status,
)
from ..http import bearer_headers, new_session, raise_if_http_error, safe_json
from ..polling import STATE_FAILED, STATE_PROCESSING, STATE_READY, PollPolicy, poll_until_ready
from ..types import Metrics, PublishRequest, PublishResult, format_caption

DEFAULT_CATEGORY_ID = "22"  # People & Blogs
RESUME_INCOMPLETE = 308
_RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")


def committed_offset(resp: requests.Response) -> int:
    """Next byte to send, from the Range header of a 308 (no header means nothing stored)."""
    match = _RANGE_RE.search(resp.headers.get("Range") or resp.headers.get("range") or "")
    return int(match.group(2)) + 1 if match else 0


class YouTubeAdapter:
    """
    Resumable upload straight from the source URL:

      1. HEAD source            -> total bytes, content type
      2. POST upload?uploadType=resumable -> session URI (Location)
      3. PUT chunks into the session URI while streaming the source
           308  -> continue from the committed offset, no backoff
           5xx  -> exponential backoff, ask the session where it stands, resume
           4xx  -> permanent failure
      4. poll videos?part=processingDetails,status until processed
    """
    platform = PLATFORM_YOUTUBE

    def __init__(self, token_manager, *, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, sleep: Callable[[float], None] = time.sleep):
        self.tokens = token_manager
        self.settings = settings or PublishingSettings()
        self.http = http or new_session()
        self.sleep = sleep

    def _log_tag(self, method: str) -> str:
        return make_log_tag("youtube_adapter.py", "YouTubeAdapter", method,
                            user=self.tokens.credential.user_id)

    # ----------------------------
    # Contract
    # ----------------------------
    def publish(self, request: PublishRequest) -> PublishResult:
        log_tag = self._log_tag("publish")
        video_id: Optional[str] = None
        try:
            request.validate()
            if len(request.videos) != 1 or len(request.media) != 1:
                raise PublishValidationError("YouTube uploads require exactly one video")
            source_url = request.videos[0].url

            total, content_type = self.inspect_source(source_url)
            Log.info(f"{log_tag} source size={total} type={content_type}")

            metadata = self.build_metadata(request)
            token = self.tokens.valid_access_token()
            try:
                session_uri = self.init_resumable_upload(token, metadata, total, content_type)
            except AuthError:
                # token revoked ahead of its stated expiry: refresh once and retry
                Log.info(f"{log_tag} upload init rejected token, refreshing")
                token = self.tokens.force_refresh().access_token
                session_uri = self.init_resumable_upload(token, metadata, total, content_type)

            video = self.upload_resumable(session_uri, source_url, total, content_type, log_tag=log_tag)
            video_id = video.get("id")
            if not video_id:
                raise ProtocolError(f"YouTube upload finished without a video id: {video}")
            Log.info(f"{log_tag} upload complete video_id={video_id}")

            outcome = poll_until_ready(
                lambda: self.get_processing_state(video_id, token),
                PollPolicy(self.settings.yt_processing_poll_seconds, self.settings.yt_processing_max_polls),
                sleep=self.sleep,
                log_tag=f"{log_tag}[video:{video_id}]",
            )
            if outcome.state == STATE_FAILED:
                return PublishResult.failure(
                    f"YouTube processing failed: {outcome.detail}",
                    kind="protocol", platform=self.platform, external_post_id=video_id,
                )
            if not outcome.ready:
                # the bytes are already on YouTube; re-running the job would upload a duplicate
                return PublishResult.failure(
                    f"YouTube processing still running after {outcome.attempts} checks",
                    kind="transient", retryable=False, platform=self.platform, external_post_id=video_id,
                )

            return PublishResult.ok(video_id, f"https://www.youtube.com/watch?v={video_id}",
                                    platform=self.platform, raw=video)

        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{log_tag} publish failed kind={err.kind} status={err.status}: {err.message}")
            result = PublishResult.from_error(err, platform=self.platform)
            result.external_post_id = video_id
            return result

    def update(self, external_id: str, request: PublishRequest) -> PublishResult:
        log_tag = self._log_tag("update")
        try:
            token = self.tokens.valid_access_token()
            snippet = self.build_metadata(request)["snippet"]
            r = self.http.put(
                f"{YOUTUBE_API_BASE}/videos",
                params={"part": "snippet"},
                json={"id": external_id, "snippet": snippet},
                headers=bearer_headers(token, extra={"Content-Type": "application/json; charset=UTF-8"}),
                timeout=self.settings.http_timeout,
            )
            raise_if_http_error(r, "YouTube update failed")
            return PublishResult.ok(external_id, f"https://www.youtube.com/watch?v={external_id}",
                                    platform=self.platform)
        except Exception as e:
            err = error_from_exception(e)
            Log.error(f"{log_tag} update failed: {err.message}")
            return PublishResult.from_error(err, platform=self.platform)

    def delete(self, external_id: str) -> bool:
        try:
            r = self.http.delete(
                f"{YOUTUBE_API_BASE}/videos",
                params={"id": external_id},
                headers=bearer_headers(self.tokens.valid_access_token()),
                timeout=self.settings.http_timeout,
            )
            raise_if_http_error(r, "YouTube delete failed")
            return True
        except Exception as e:
            Log.error(f"{self._log_tag('delete')} {error_from_exception(e).message}")
            return False

    def get_metrics(self, external_id: str) -> Metrics:
        metrics = Metrics()
        try:
            r = self.http.get(
                f"{YOUTUBE_API_BASE}/videos",
                params={"part": "statistics", "id": external_id},
                headers=bearer_headers(self.tokens.valid_access_token()),
                timeout=self.settings.http_timeout,
            )
            items = raise_if_http_error(r, "YouTube metrics failed").get("items") or []
            stats = (items[0] if items else {}).get("statistics") or {}
            metrics.views = int(stats.get("viewCount") or 0)
            metrics.likes = int(stats.get("likeCount") or 0)
            metrics.comments = int(stats.get("commentCount") or 0)
            metrics.engagement = metrics.likes + metrics.comments
        except Exception as e:
            Log.info(f"{self._log_tag('get_metrics')} metrics unavailable: {error_from_exception(e).message}")
        return metrics

    def verify_auth(self) -> bool:
        return self.tokens.verify_auth()

    # ----------------------------
    # Metadata
    # ----------------------------
    def build_metadata(self, request: PublishRequest) -> Dict[str, Any]:
        title = request.title or (request.body.splitlines()[0] if request.body else "")
        snippet: Dict[str, Any] = {
            "title": title.strip()[:100] or "Untitled",
            "description": format_caption(request, include_title=False, include_mentions=True)[:5000],
            "categoryId": DEFAULT_CATEGORY_ID,
        }
        if request.hashtags:
            snippet["tags"] = request.hashtags[:30]
        return {"snippet": snippet, "status": {"privacyStatus": self.settings.yt_privacy_status}}

    # ----------------------------
    # Step 1: source size
    # ----------------------------
    def inspect_source(self, source_url: str) -> Tuple[int, str]:
        r = self.http.head(source_url, allow_redirects=True, timeout=self.settings.http_timeout)
        length = r.headers.get("Content-Length") if r.status_code < 400 else None
        content_type = (r.headers.get("Content-Type") or "").split(";")[0].strip()

        if not length:
            # some hosts refuse HEAD; a one-byte ranged GET reports the total instead
            g = self.http.get(source_url, headers={"Range": "bytes=0-0"}, stream=True,
                              timeout=self.settings.http_timeout)
            try:
                content_range = g.headers.get("Content-Range") or ""
                if "/" in content_range:
                    length = content_range.rsplit("/", 1)[1]
                content_type = content_type or (g.headers.get("Content-Type") or "").split(";")[0].strip()
            finally:
                g.close()

        try:
            total = int(length or 0)
        except ValueError:
            total = 0
        if total <= 0:
            raise ProtocolError(f"Could not determine the size of {source_url}")
        if content_type and not content_type.startswith("video/"):
            content_type = "video/*"
        return total, content_type or "video/*"

    # ----------------------------
    # Step 2: open session
    # ----------------------------
    def init_resumable_upload(self, token: str, metadata: Dict[str, Any], total: int, content_type: str) -> str:
        r = self.http.post(
            YOUTUBE_UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            json=metadata,
            headers=bearer_headers(token, extra={
                "Content-Type": "application/json; charset=UTF-8",
                "X-Upload-Content-Length": str(total),
                "X-Upload-Content-Type": content_type,
            }),
            timeout=self.settings.http_timeout,
        )
        raise_if_http_error(r, "YouTube init resumable upload failed")
        session_uri = r.headers.get("Location") or r.headers.get("location")
        if not session_uri:
            raise ProtocolError("YouTube resumable init succeeded but Location header missing")
        return session_uri

    # ----------------------------
    # Step 3: stream chunks
    # ----------------------------
    def upload_resumable(self, session_uri: str, source_url: str, total: int, content_type: str,
                         *, log_tag: str = "") -> Dict[str, Any]:
        chunk_bytes = max(1, int(self.settings.yt_chunk_bytes))
        max_retries = self.settings.yt_upload_max_retries
        max_stalls = max(1, int(self.settings.yt_upload_max_stalls))

        offset = 0
        attempts = 0
        transient_failures = 0
        stalls = 0
        source: Optional[requests.Response] = None
        chunks: Optional[Iterator[bytes]] = None

        try:
            while True:
                if chunks is None:
                    source = self._open_source(source_url, offset)
                    chunks = self._read_chunks(source, chunk_bytes)

                chunk = next(chunks, None)
                if chunk is None:
                    raise TransientError(f"Source stream ended at byte {offset} of {total}")
                end = offset + len(chunk) - 1

                attempts += 1
                status: Optional[int]
                try:
                    resp = self.http.put(
                        session_uri,
                        data=chunk,
                        headers={
                            "Content-Length": str(len(chunk)),
                            "Content-Type": content_type,
                            "Content-Range": f"bytes {offset}-{end}/{total}",
                        },
                        timeout=self.settings.http_timeout,
                    )
                    status = resp.status_code
                except (requests.ConnectionError, requests.Timeout) as e:
                    Log.info(f"{log_tag} upload attempt={attempts} network error: {e}")
                    resp, status = None, None

                if status in (200, 201):
                    Log.info(f"{log_tag} upload finished after {attempts} attempt(s)")
                    return safe_json(resp)

                if status == RESUME_INCOMPLETE:
                    next_offset = committed_offset(resp)
                    transient_failures = 0
                    if next_offset <= offset:
                        stalls += 1
                        if stalls >= max_stalls:
                            raise TransientError(
                                f"YouTube upload made no progress past byte {offset} in {stalls} attempts",
                                status=status,
                            )
                    else:
                        stalls = 0
                    if next_offset != end + 1:
                        # server kept less than we sent; restart the source at its offset
                        self._close(source)
                        chunks = None
                    offset = next_offset
                    continue

                if status is None or status >= 500:
                    transient_failures += 1
                    if transient_failures > max_retries:
                        raise TransientError(
                            f"YouTube upload failed after {transient_failures} server errors",
                            status=status,
                        )
                    delay = self.settings.yt_upload_backoff_seconds * (2 ** (transient_failures - 1))
                    Log.info(f"{log_tag} upload attempt={attempts} status={status}, backing off {delay}s")
                    self.sleep(delay)

                    next_offset, finished = self.query_upload_status(session_uri, total)
                    if finished is not None:
                        return finished
                    self._close(source)
                    chunks = None
                    offset = next_offset
                    continue

                data = safe_json(resp)
                Log.info(f"{log_tag} upload attempt={attempts} rejected status={status}: {data}")
                err = error_from_status(status, f"YouTube upload rejected: {data}", payload=data)
                err.retryable = False
                raise err
        finally:
            self._close(source)

    def query_upload_status(self, session_uri: str, total: int) -> Tuple[int, Optional[Dict[str, Any]]]:
        """Ask the session how many bytes it holds. Returns (offset, video) where video is set if done."""
        r = self.http.put(
            session_uri,
            data=b"",
            headers={"Content-Length": "0", "Content-Range": f"bytes */{total}"},
            timeout=self.settings.http_timeout,
        )
        if r.status_code in (200, 201):
            return total, safe_json(r)
        if r.status_code == RESUME_INCOMPLETE:
            return committed_offset(r), None
        if r.status_code in (404, 410):
            raise ProtocolError("YouTube upload session expired", status=r.status_code)
        raise TransientError(f"YouTube upload status query failed: {r.status_code}", status=r.status_code)

    def _open_source(self, source_url: str, offset: int) -> requests.Response:
        headers = {"Range": f"bytes={offset}-"} if offset else {}
        r = self.http.get(source_url, headers=headers, stream=True, timeout=self.settings.http_timeout)
        if r.status_code >= 400:
            self._close(r)
            raise error_from_status(r.status_code, f"Source media fetch failed: {r.status_code}")
        if offset and r.status_code != 206:
            self._close(r)
            raise ProtocolError("Source host does not support ranged reads; cannot resume upload")
        return r

    @staticmethod
    def _read_chunks(source: requests.Response, chunk_bytes: int) -> Iterator[bytes]:
        buf = bytearray()
        for piece in source.iter_content(chunk_size=min(chunk_bytes, 1024 * 1024)):
            if not piece:
                continue
            buf.extend(piece)
            while len(buf) >= chunk_bytes:
                yield bytes(buf[:chunk_bytes])
                del buf[:chunk_bytes]
        if buf:
            yield bytes(buf)

    @staticmethod
    def _close(resp: Optional[requests.Response]) -> None:
        if resp is not None:
            resp.close()

    # ----------------------------
    # Step 4: processing
    # ----------------------------
    def get_processing_state(self, video_id: str, token: str) -> Tuple[str, Any]:
        try:
            r = self.http.get(
                f"{YOUTUBE_API_BASE}/videos",
                params={"part": "processingDetails,status", "id": video_id},
                headers=bearer_headers(token),
                timeout=self.settings.http_timeout,
            )
            data = raise_if_http_error(r, "YouTube processing status failed")
        except (TransientError, requests.RequestException) as e:
            Log.info(f"{self._log_tag('get_processing_state')} status check failed, still waiting: {e}")
            return STATE_PROCESSING, None

        items: List[Dict[str, Any]] = data.get("items") or []
        if not items:
            return STATE_PROCESSING, "not visible yet"

        processing = (items[0].get("processingDetails") or {}).get("processingStatus")
        upload_status = (items[0].get("status") or {}).get("uploadStatus")

        if processing in ("failed", "terminated") or upload_status in ("failed", "rejected", "deleted"):
            reason = (items[0].get("status") or {}).get("failureReason") or \
                (items[0].get("status") or {}).get("rejectionReason") or processing or upload_status
            return STATE_FAILED, reason
        if processing == "succeeded" or upload_status == "processed":
            return STATE_READY, processing or upload_status
        return STATE_PROCESSING, processing or upload_status
