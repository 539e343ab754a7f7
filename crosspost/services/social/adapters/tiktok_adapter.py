# crosspost/services/social/adapters/tiktok_adapter.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_TIKTOK
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import PublishingError, UnsupportedOperationError
from ..types import Metrics, PublishRequest, PublishResult

NOT_IMPLEMENTED = "TikTok publishing is not implemented yet"


class TikTokAdapter:
    """Placeholder: honours the adapter contract, publishing is not wired up."""
    platform = PLATFORM_TIKTOK

    def __init__(self, token_manager, *, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, sleep=None):
        self.tokens = token_manager
        self.settings = settings or PublishingSettings()

    def _log_tag(self, method: str) -> str:
        return make_log_tag("tiktok_adapter.py", "TikTokAdapter", method, user=self.tokens.credential.user_id)

    def publish(self, request: PublishRequest) -> PublishResult:
        try:
            request.validate()
        except PublishingError as e:
            return PublishResult.from_error(e, platform=self.platform)
        Log.info(f"{self._log_tag('publish')} {NOT_IMPLEMENTED}")
        return PublishResult.from_error(UnsupportedOperationError(NOT_IMPLEMENTED), platform=self.platform)

    def update(self, external_id: str, request: PublishRequest) -> PublishResult:
        return PublishResult.from_error(UnsupportedOperationError("TikTok does not support editing published videos"),
                                        platform=self.platform, external_post_id=external_id)

    def delete(self, external_id: str) -> bool:
        Log.info(f"{self._log_tag('delete')} TikTok delete is not implemented")
        return False

    def get_metrics(self, external_id: str) -> Metrics:
        return Metrics()

    def verify_auth(self) -> bool:
        return self.tokens.verify_auth()
