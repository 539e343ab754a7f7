"""
Tests for the YouTube resumable upload state machine and processing poll.
"""

from dataclasses import replace

import pytest
import requests

from crosspost.services.social.adapters import YouTubeAdapter
from crosspost.services.social.adapters.youtube_adapter import committed_offset
from crosspost.services.social.types import MediaItem, PublishRequest

from .conftest import FakeTokenManager, make_response

SOURCE = "https://cdn.example.com/video.mp4"
SESSION = "https://www.googleapis.com/upload/youtube/v3/videos?upload_id=abc"
PAYLOAD = b"0123456789"

PROCESSED = {"items": [{"processingDetails": {"processingStatus": "succeeded"},
                        "status": {"uploadStatus": "processed"}}]}
PROCESSING = {"items": [{"processingDetails": {"processingStatus": "processing"},
                         "status": {"uploadStatus": "uploaded"}}]}


def video_request():
    return PublishRequest(title="Demo", body="Walkthrough", hashtags=["demo"],
                          media=[MediaItem("video", SOURCE)])


def head_ok():
    return make_response(200, headers={"Content-Length": str(len(PAYLOAD)), "Content-Type": "video/mp4"})


def init_ok():
    return make_response(200, {}, headers={"Location": SESSION})


def source(chunks=(PAYLOAD,), status=200):
    return make_response(status, chunks=chunks)


@pytest.fixture
def tokens(youtube_credential):
    return FakeTokenManager(youtube_credential, token="yt-access")


@pytest.fixture
def adapter(tokens, settings, http, sleep):
    return YouTubeAdapter(tokens, settings=settings, http=http, sleep=sleep)


def data_puts(http):
    return [c for c in http.put.call_args_list if not c[1]["headers"]["Content-Range"].startswith("bytes */")]


class TestResumableUpload:
    def test_resume_incomplete_then_success(self, adapter, http):
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [source(), make_response(200, PROCESSED)]
        http.put.side_effect = [
            make_response(308, headers={"Range": "bytes=0-4"}),
            make_response(200, {"id": "vid1"}),
        ]

        result = adapter.publish(video_request())

        assert result.success
        assert result.external_post_id == "vid1"
        assert result.permalink == "https://www.youtube.com/watch?v=vid1"
        assert http.put.call_count == 2
        ranges = [c[1]["headers"]["Content-Range"] for c in http.put.call_args_list]
        assert ranges == ["bytes 0-4/10", "bytes 5-9/10"]
        assert http.put.call_args_list[1][1]["data"] == b"56789"

    def test_client_error_is_permanent_after_one_put(self, adapter, http):
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.return_value = source()
        http.put.return_value = make_response(400, {"error": {"message": "bad request"}})

        result = adapter.publish(video_request())

        assert not result.success
        assert not result.retryable
        assert http.put.call_count == 1

    def test_server_error_backs_off_and_resumes(self, adapter, http, settings, sleeps):
        adapter.settings = replace(settings, yt_upload_backoff_seconds=1.0)
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [
            source(),
            source(chunks=(b"56789",), status=206),
            make_response(200, PROCESSED),
        ]
        http.put.side_effect = [
            make_response(503),
            make_response(308, headers={"Range": "bytes=0-4"}),
            make_response(200, {"id": "vid1"}),
        ]

        result = adapter.publish(video_request())

        assert result.success
        assert sleeps == [1.0]
        status_query = http.put.call_args_list[1][1]["headers"]
        assert status_query["Content-Range"] == "bytes */10"
        reopen = http.get.call_args_list[1][1]["headers"]
        assert reopen == {"Range": "bytes=5-"}
        assert http.put.call_args_list[2][1]["headers"]["Content-Range"] == "bytes 5-9/10"

    def test_network_error_counts_as_transient(self, adapter, http):
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [source(), make_response(200, PROCESSED)]
        http.put.side_effect = [
            requests.ConnectionError("reset"),
            make_response(200, {"id": "vid1"}),
        ]

        result = adapter.publish(video_request())

        assert result.success
        assert result.external_post_id == "vid1"

    def test_gives_up_after_max_retries(self, adapter, http, settings, sleeps):
        adapter.settings = replace(settings, yt_upload_backoff_seconds=0.5)
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = lambda *a, **kw: source()

        def put(url, data=None, headers=None, timeout=None):
            if headers["Content-Range"].startswith("bytes */"):
                return make_response(308)
            return make_response(503)

        http.put.side_effect = put

        result = adapter.publish(video_request())

        assert not result.success
        assert result.retryable
        assert result.error_kind == "transient"
        assert len(data_puts(http)) == settings.yt_upload_max_retries + 1
        assert sleeps == [0.5, 1.0, 2.0]

    def test_resume_without_progress_is_capped(self, adapter, http, settings):
        adapter.settings = replace(settings, yt_upload_max_stalls=3)
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = lambda *a, **kw: source()
        http.put.return_value = make_response(308)

        result = adapter.publish(video_request())

        assert not result.success
        assert result.retryable
        assert result.error_kind == "transient"
        assert http.put.call_count == 3

    def test_progress_resets_the_stall_count(self, adapter, http, settings):
        adapter.settings = replace(settings, yt_upload_max_stalls=2)
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [
            source(),
            source(),
            source(chunks=(b"56789",), status=206),
            make_response(200, PROCESSED),
        ]
        http.put.side_effect = [
            make_response(308),
            make_response(308, headers={"Range": "bytes=0-4"}),
            make_response(308, headers={"Range": "bytes=0-4"}),
            make_response(200, {"id": "vid1"}),
        ]

        result = adapter.publish(video_request())

        assert result.success
        assert http.put.call_count == 4

    def test_upload_init_auth_failure_refreshes_once(self, adapter, http, tokens):
        http.head.return_value = head_ok()
        http.post.side_effect = [make_response(401, {"error": {"message": "Invalid Credentials"}}), init_ok()]
        http.get.side_effect = [source(), make_response(200, PROCESSED)]
        http.put.return_value = make_response(200, {"id": "vid1"})

        result = adapter.publish(video_request())

        assert result.success
        assert tokens.refresh_calls == 1
        assert http.post.call_count == 2

    def test_init_sends_upload_headers(self, adapter, http):
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [source(), make_response(200, PROCESSED)]
        http.put.return_value = make_response(200, {"id": "vid1"})

        adapter.publish(video_request())

        kwargs = http.post.call_args[1]
        assert kwargs["params"] == {"uploadType": "resumable", "part": "snippet,status"}
        assert kwargs["headers"]["X-Upload-Content-Length"] == "10"
        assert kwargs["headers"]["X-Upload-Content-Type"] == "video/mp4"
        assert kwargs["headers"]["Authorization"] == "Bearer yt-access"
        assert kwargs["json"]["snippet"]["title"] == "Demo"
        assert kwargs["json"]["snippet"]["tags"] == ["demo"]


class TestProcessing:
    def test_processing_timeout_is_not_retried(self, adapter, http, settings):
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [source()] + [make_response(200, PROCESSING)] * settings.yt_processing_max_polls
        http.put.return_value = make_response(200, {"id": "vid1"})

        result = adapter.publish(video_request())

        assert not result.success
        assert not result.retryable
        assert result.external_post_id == "vid1"

    def test_processing_failure_reports_reason(self, adapter, http):
        http.head.return_value = head_ok()
        http.post.return_value = init_ok()
        http.get.side_effect = [
            source(),
            make_response(200, {"items": [{"processingDetails": {"processingStatus": "failed"},
                                           "status": {"uploadStatus": "failed", "failureReason": "codec"}}]}),
        ]
        http.put.return_value = make_response(200, {"id": "vid1"})

        result = adapter.publish(video_request())

        assert not result.success
        assert "codec" in result.error


class TestValidation:
    def test_requires_exactly_one_video(self, adapter, http):
        request = PublishRequest(title="x", media=[MediaItem("image", "https://cdn.example.com/a.jpg")])

        result = adapter.publish(request)

        assert result.error_kind == "validation"
        http.head.assert_not_called()

    def test_unknown_source_size_fails(self, adapter, http):
        http.head.return_value = make_response(405)
        http.get.return_value = make_response(200, headers={})

        result = adapter.publish(video_request())

        assert not result.success
        http.post.assert_not_called()


class TestHelpers:
    def test_committed_offset(self):
        assert committed_offset(make_response(308, headers={"Range": "bytes=0-1048575"})) == 1048576
        assert committed_offset(make_response(308)) == 0

    def test_source_size_falls_back_to_ranged_get(self, adapter, http):
        http.head.return_value = make_response(405)
        http.get.return_value = make_response(206, headers={"Content-Range": "bytes 0-0/2048",
                                                            "Content-Type": "video/quicktime"})

        assert adapter.inspect_source(SOURCE) == (2048, "video/quicktime")
        assert http.get.call_args[1]["headers"] == {"Range": "bytes=0-0"}

    def test_metadata_defaults_title(self, adapter):
        meta = adapter.build_metadata(PublishRequest())
        assert meta["snippet"]["title"] == "Untitled"
        assert meta["status"]["privacyStatus"] == "public"


class TestOtherOperations:
    def test_update_puts_snippet(self, adapter, http):
        http.put.return_value = make_response(200, {"id": "vid1"})

        result = adapter.update("vid1", PublishRequest(title="New title", body="New body"))

        assert result.success
        kwargs = http.put.call_args[1]
        assert kwargs["params"] == {"part": "snippet"}
        assert kwargs["json"]["id"] == "vid1"
        assert kwargs["json"]["snippet"]["title"] == "New title"

    def test_delete(self, adapter, http):
        http.delete.return_value = make_response(204)
        assert adapter.delete("vid1") is True

        http.delete.return_value = make_response(404, {"error": {"message": "not found"}})
        assert adapter.delete("vid1") is False

    def test_metrics(self, adapter, http):
        http.get.return_value = make_response(200, {"items": [{"statistics": {
            "viewCount": "1000", "likeCount": "50", "commentCount": "7"}}]})

        metrics = adapter.get_metrics("vid1")

        assert (metrics.views, metrics.likes, metrics.comments) == (1000, 50, 7)
