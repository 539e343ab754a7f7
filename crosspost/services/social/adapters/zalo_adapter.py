# crosspost/services/social/adapters/zalo_adapter.py
from __future__ import annotations

from typing import Optional

import requests

from ....config import PublishingSettings
from ....constants.platforms import PLATFORM_ZALO
from ....utils.helpers import make_log_tag
from ....utils.logger import Log
from ..errors import PublishingError, UnsupportedOperationError
from ..types import Metrics, PublishRequest, PublishResult

NOT_IMPLEMENTED = "Zalo Official Account posting is not implemented yet"


class ZaloAdapter:
    """Placeholder for Zalo OA articles; same contract, no publishing yet."""
    platform = PLATFORM_ZALO

    def __init__(self, token_manager, *, settings: Optional[PublishingSettings] = None,
                 http: Optional[requests.Session] = None, sleep=None):
        self.tokens = token_manager
        self.settings = settings or PublishingSettings()

    def publish(self, request: PublishRequest) -> PublishResult:
        try:
            request.validate()
        except PublishingError as e:
            return PublishResult.from_error(e, platform=self.platform)
        Log.info(f"{make_log_tag('zalo_adapter.py', 'ZaloAdapter', 'publish')} {NOT_IMPLEMENTED}")
        return PublishResult.from_error(UnsupportedOperationError(NOT_IMPLEMENTED), platform=self.platform)

    def update(self, external_id: str, request: PublishRequest) -> PublishResult:
        return PublishResult.from_error(UnsupportedOperationError(NOT_IMPLEMENTED), platform=self.platform,
                                        external_post_id=external_id)

    def delete(self, external_id: str) -> bool:
        return False

    def get_metrics(self, external_id: str) -> Metrics:
        return Metrics()

    def verify_auth(self) -> bool:
        return self.tokens.verify_auth()
