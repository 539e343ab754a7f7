"""Tests for Facebook page posts and the TikTok / Zalo placeholder adapters."""

import pytest

from crosspost.models.social.credential import Credential
from crosspost.services.social.adapters import FacebookAdapter, TikTokAdapter, ZaloAdapter
from crosspost.services.social.types import MediaItem, PublishRequest

from .conftest import FakeTokenManager, make_response


@pytest.fixture
def facebook(settings, http):
    cred = Credential(user_id="user-1", platform="facebook", access_token="page-token",
                      platform_account_id="1122")
    return FacebookAdapter(FakeTokenManager(cred, token="page-token"), settings=settings, http=http)


class TestFacebookAdapter:
    def test_text_post_goes_to_feed(self, facebook, http):
        http.post.return_value = make_response(200, {"id": "1122_99"})
        http.get.return_value = make_response(200, {"permalink_url": "https://facebook.com/1122/posts/99"})

        result = facebook.publish(PublishRequest(title="Hi", body="there", hashtags=["news"]))

        assert result.success
        assert result.external_post_id == "1122_99"
        assert result.permalink == "https://facebook.com/1122/posts/99"
        assert http.post.call_args[0][0].endswith("/1122/feed")
        assert http.post.call_args[1]["data"]["message"] == "Hi\n\nthere\n\n#news"

    def test_single_image_goes_to_photos(self, facebook, http):
        http.post.return_value = make_response(200, {"id": "photo1", "post_id": "1122_100"})
        http.get.return_value = make_response(200, {"permalink_url": "https://facebook.com/p/100"})

        result = facebook.publish(PublishRequest(body="pic", media=[MediaItem("image", "https://cdn.example.com/a.jpg")]))

        assert result.external_post_id == "1122_100"
        assert http.post.call_args[0][0].endswith("/1122/photos")

    def test_rate_limit(self, facebook, http):
        http.post.return_value = make_response(400, {"error": {"code": 32, "message": "Page request limit"}})

        result = facebook.publish(PublishRequest(body="x"))

        assert result.error_kind == "rate_limited"
        assert result.error_code == "32"
        assert result.retryable

    def test_delete(self, facebook, http):
        http.delete.return_value = make_response(200, {"success": True})
        assert facebook.delete("1122_99") is True


class TestPlaceholders:
    @pytest.mark.parametrize("adapter_cls,platform", [(TikTokAdapter, "tiktok"), (ZaloAdapter, "zalo")])
    def test_publish_reports_not_implemented(self, adapter_cls, platform, http):
        cred = Credential(user_id="user-1", platform=platform, access_token="t")
        adapter = adapter_cls(FakeTokenManager(cred), http=http)

        result = adapter.publish(PublishRequest(body="hello"))

        assert not result.success
        assert not result.retryable
        assert result.error_kind == "unsupported"
        assert result.platform == platform
        assert adapter.delete("x") is False
        assert adapter.get_metrics("x").views == 0
        http.post.assert_not_called()

    @pytest.mark.parametrize("adapter_cls,platform", [(TikTokAdapter, "tiktok"), (ZaloAdapter, "zalo")])
    def test_invalid_request_still_validated(self, adapter_cls, platform):
        cred = Credential(user_id="user-1", platform=platform, access_token="t")

        result = adapter_cls(FakeTokenManager(cred)).publish(PublishRequest())

        assert result.error_kind == "validation"
