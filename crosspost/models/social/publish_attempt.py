# crosspost/models/social/publish_attempt.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from ...utils.helpers import as_object_id
from ...utils.social.token_utils import utcnow


class PublishAttemptLog:
    collection_name = "social_publish_attempts"

    STATUS_SUCCESS = "Success"
    STATUS_FAILED = "Failed"

    def __init__(self, database):
        self.collection = database[self.collection_name]

    def ensure_indexes(self):
        self.collection.create_index([("user__id", ASCENDING), ("platform", ASCENDING)])
        self.collection.create_index([("job_id", ASCENDING)])
        self.collection.create_index([("created_at", DESCENDING)])
        return True

    def record(self, *, user_id: str, platform: str, operation: str, result: Dict[str, Any],
               job_id: Optional[str] = None, attempt: Optional[int] = None) -> None:
        self.collection.insert_one({
            "user__id": as_object_id(user_id),
            "platform": platform,
            "operation": operation,
            "job_id": job_id,
            "attempt": attempt,
            "status": self.STATUS_SUCCESS if result.get("success") else self.STATUS_FAILED,
            "external_post_id": result.get("external_post_id"),
            "permalink": result.get("permalink"),
            "error_message": result.get("error"),
            "error_kind": result.get("error_kind"),
            "error_code": result.get("error_code"),
            "created_at": utcnow(),
        })

    def list_for_job(self, job_id: str) -> List[Dict[str, Any]]:
        return list(self.collection.find({"job_id": job_id}, {"_id": 0}).sort("created_at", ASCENDING))
