"""
Tests for the Instagram container publishing flow.
"""

from unittest.mock import Mock

import pytest
import requests

from crosspost.services.social.adapters import InstagramAdapter
from crosspost.services.social.types import MediaItem, PublishRequest

from .conftest import FakeTokenManager, make_response


def image_request(count=1, **kwargs):
    media = [MediaItem("image", f"https://cdn.example.com/{i}.jpg") for i in range(count)]
    return PublishRequest(title="Launch", body="We shipped", media=media, **kwargs)


@pytest.fixture
def tokens(instagram_credential):
    return FakeTokenManager(instagram_credential, token="ig-token")


@pytest.fixture
def adapter(tokens, settings, http, sleep):
    return InstagramAdapter(tokens, settings=settings, http=http, sleep=sleep)


class TestSingleImage:
    def test_container_poll_publish(self, adapter, http):
        http.post.side_effect = [
            make_response(200, {"id": "c1"}),
            make_response(200, {"id": "p1"}),
        ]
        http.get.side_effect = [
            make_response(200, {"status_code": "IN_PROGRESS"}),
            make_response(200, {"status_code": "FINISHED"}),
            make_response(200, {"permalink": "https://www.instagram.com/p/abc/"}),
        ]

        result = adapter.publish(image_request())

        assert result.success
        assert result.external_post_id == "p1"
        assert result.permalink == "https://www.instagram.com/p/abc/"

        create_url = http.post.call_args_list[0][0][0]
        assert create_url.endswith("/17840000000000001/media")
        create_data = http.post.call_args_list[0][1]["data"]
        assert create_data["image_url"] == "https://cdn.example.com/0.jpg"
        assert create_data["caption"] == "Launch\n\nWe shipped"

        publish_data = http.post.call_args_list[1][1]["data"]
        assert http.post.call_args_list[1][0][0].endswith("/media_publish")
        assert publish_data["creation_id"] == "c1"

    def test_permalink_falls_back_to_media_id(self, adapter, http):
        http.post.side_effect = [make_response(200, {"id": "c1"}), make_response(200, {"id": "p1"})]
        http.get.side_effect = [
            make_response(200, {"status_code": "FINISHED"}),
            make_response(500, {"error": {"message": "oops"}}),
        ]

        result = adapter.publish(image_request())

        assert result.success
        assert result.permalink == "p1"

    def test_container_error_is_terminal(self, adapter, http):
        http.post.return_value = make_response(200, {"id": "c1"})
        http.get.return_value = make_response(200, {"status_code": "ERROR", "status": "Unsupported format"})

        result = adapter.publish(image_request())

        assert not result.success
        assert not result.retryable
        assert result.error_kind == "protocol"
        assert "Unsupported format" in result.error
        assert http.post.call_count == 1

    def test_container_timeout_is_retryable(self, adapter, http, settings, sleeps):
        http.post.return_value = make_response(200, {"id": "c1"})
        http.get.return_value = make_response(200, {"status_code": "IN_PROGRESS"})

        result = adapter.publish(image_request())

        assert not result.success
        assert result.retryable
        assert result.error_kind == "transient"
        assert http.get.call_count == settings.ig_image_max_polls
        assert len(sleeps) == settings.ig_image_max_polls - 1

    def test_polling_network_blip_keeps_waiting(self, adapter, http):
        http.post.side_effect = [make_response(200, {"id": "c1"}), make_response(200, {"id": "p1"})]
        http.get.side_effect = [
            requests.ConnectionError("reset"),
            make_response(200, {"status_code": "FINISHED"}),
            make_response(200, {"permalink": "https://www.instagram.com/p/abc/"}),
        ]

        assert adapter.publish(image_request()).success

    def test_rate_limit_code_passes_through(self, adapter, http):
        http.post.return_value = make_response(
            400, {"error": {"code": 4, "message": "Application request limit reached"}}
        )

        result = adapter.publish(image_request())

        assert not result.success
        assert result.error_kind == "rate_limited"
        assert result.error_code == "4"
        assert result.retryable
        assert "Application request limit reached" in result.error

    def test_expired_token_is_auth_error(self, adapter, http):
        http.post.return_value = make_response(
            400, {"error": {"code": 190, "message": "Error validating access token"}}
        )

        result = adapter.publish(image_request())

        assert result.error_kind == "auth"
        assert not result.retryable

    def test_publish_retries_while_not_ready(self, adapter, http):
        not_ready = make_response(400, {"error": {"code": 9007, "error_subcode": 2207027,
                                                  "message": "Media ID is not available"}})
        http.post.side_effect = [make_response(200, {"id": "c1"}), not_ready, make_response(200, {"id": "p1"})]
        http.get.side_effect = [
            make_response(200, {"status_code": "FINISHED"}),
            make_response(200, {"permalink": "https://www.instagram.com/p/abc/"}),
        ]

        result = adapter.publish(image_request())

        assert result.success
        assert http.post.call_count == 3


class TestVideo:
    def test_reel_uses_reels_media_type(self, adapter, http, settings):
        http.post.side_effect = [make_response(200, {"id": "c1"}), make_response(200, {"id": "p1"})]
        http.get.side_effect = [
            make_response(200, {"status_code": "FINISHED"}),
            make_response(200, {"permalink": "https://www.instagram.com/reel/xyz/"}),
        ]
        request = PublishRequest(body="clip", media=[MediaItem("video", "https://cdn.example.com/v.mp4")],
                                 content_type="reel")

        result = adapter.publish(request)

        assert result.success
        data = http.post.call_args_list[0][1]["data"]
        assert data["media_type"] == "REELS"
        assert data["video_url"] == "https://cdn.example.com/v.mp4"

    def test_video_gets_longer_poll_ceiling(self, adapter, http, settings):
        http.post.return_value = make_response(200, {"id": "c1"})
        http.get.return_value = make_response(200, {"status_code": "IN_PROGRESS"})
        request = PublishRequest(media=[MediaItem("video", "https://cdn.example.com/v.mp4")])

        adapter.publish(request)

        assert http.get.call_count == settings.ig_video_max_polls


class TestCarousel:
    @pytest.mark.parametrize("count", [1, 11])
    def test_out_of_range_rejected_before_network(self, adapter, http, tokens, count):
        result = adapter.publish(image_request(count, content_type="carousel"))

        assert not result.success
        assert result.error_kind == "validation"
        assert not result.retryable
        http.post.assert_not_called()
        http.get.assert_not_called()
        assert tokens.valid_calls == 0

    def test_video_in_carousel_rejected(self, adapter, http):
        request = PublishRequest(media=[
            MediaItem("image", "https://cdn.example.com/a.jpg"),
            MediaItem("video", "https://cdn.example.com/b.mp4"),
        ])

        result = adapter.publish(request)

        assert result.error_kind == "validation"
        http.post.assert_not_called()

    @pytest.mark.parametrize("count", [2, 5, 10])
    def test_children_then_parent(self, adapter, http, count):
        children = [make_response(200, {"id": f"child-{i}"}) for i in range(count)]
        http.post.side_effect = children + [
            make_response(200, {"id": "parent"}),
            make_response(200, {"id": "p1"}),
        ]
        http.get.side_effect = [
            make_response(200, {"status_code": "FINISHED"}),
            make_response(200, {"permalink": "https://www.instagram.com/p/car/"}),
        ]

        result = adapter.publish(image_request(count))

        assert result.success
        media_calls = [c for c in http.post.call_args_list if c[0][0].endswith("/media")]
        assert len(media_calls) == count + 1
        for c in media_calls[:count]:
            assert c[1]["data"]["is_carousel_item"] == "true"
            assert "caption" not in c[1]["data"]
        parent = media_calls[-1][1]["data"]
        assert parent["media_type"] == "CAROUSEL"
        assert parent["children"] == ",".join(f"child-{i}" for i in range(count))
        assert http.post.call_args_list[-1][1]["data"]["creation_id"] == "parent"


class TestOtherOperations:
    def test_update_is_unsupported(self, adapter, http):
        result = adapter.update("p1", image_request())

        assert not result.success
        assert result.error_kind == "unsupported"
        assert not result.retryable
        http.post.assert_not_called()

    def test_delete_returns_false(self, adapter, http):
        assert adapter.delete("p1") is False
        http.delete.assert_not_called()

    def test_metrics(self, adapter, http):
        http.get.side_effect = [
            make_response(200, {"like_count": 12, "comments_count": 3}),
            make_response(200, {"data": [
                {"name": "reach", "values": [{"value": 400}]},
                {"name": "views", "values": [{"value": 900}]},
                {"name": "shares", "values": [{"value": 5}]},
            ]}),
        ]

        metrics = adapter.get_metrics("p1")

        assert metrics.likes == 12
        assert metrics.comments == 3
        assert metrics.views == 900
        assert metrics.reach == 400
        assert metrics.engagement == 20

    def test_metrics_failure_returns_zeroes(self, adapter, http):
        http.get.side_effect = requests.ConnectionError("down")

        metrics = adapter.get_metrics("p1")

        assert metrics.likes == 0

    def test_verify_auth_delegates(self, adapter, tokens):
        tokens.verify_result = False
        assert adapter.verify_auth() is False
