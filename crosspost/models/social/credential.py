# crosspost/models/social/credential.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument

from ...utils.crypt import decrypt_data, encrypt_data
from ...utils.helpers import as_object_id, mask_token
from ...utils.logger import Log
from ...utils.social.token_utils import parse_token_expiry, utcnow


@dataclass
class Credential:
    """One stored token record per (user, platform). Tokens are plaintext here."""
    user_id: str
    platform: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    platform_account_id: Optional[str] = None
    scopes: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
    token_version: int = 0

    def with_tokens(self, access_token: str, refresh_token: Optional[str],
                    expires_at: Optional[datetime]) -> "Credential":
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            token_version=self.token_version + 1,
        )

    def __repr__(self) -> str:
        return (
            f"Credential(user_id={self.user_id!r}, platform={self.platform!r}, "
            f"access_token={mask_token(self.access_token)!r}, expires_at={self.expires_at!r}, "
            f"platform_account_id={self.platform_account_id!r})"
        )


class CredentialStore:
    """
    Mongo-backed credential records.

    Every write is a single update_one keyed by (user__id, platform), so the
    access/refresh token pair is replaced atomically. Superseded versions are
    counted in token_version and summarised in a capped refresh_history.
    """
    collection_name = "social_credentials"
    HISTORY_LIMIT = 20

    def __init__(self, database):
        self.collection = database[self.collection_name]

    # -------------------------------------------------
    # Indexes
    # -------------------------------------------------
    def ensure_indexes(self):
        self.collection.create_index(
            [("user__id", ASCENDING), ("platform", ASCENDING)],
            unique=True,
            name="uniq_user_platform",
        )
        self.collection.create_index(
            [("platform", ASCENDING), ("expires_at", ASCENDING)],
            name="platform_expiry",
        )
        return True

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------
    def get(self, user_id: str, platform: str) -> Optional[Credential]:
        doc = self.collection.find_one({"user__id": as_object_id(user_id), "platform": platform})
        return self._to_credential(doc) if doc else None

    def list_expiring(self, platform: str, before: datetime) -> List[Credential]:
        cursor = self.collection.find(
            {"platform": platform, "expires_at": {"$ne": None, "$lte": before}}
        )
        return [self._to_credential(d) for d in cursor]

    # -------------------------------------------------
    # Writes
    # -------------------------------------------------
    def upsert(self, credential: Credential) -> Credential:
        """Store a credential fresh from an OAuth callback."""
        now = utcnow()
        doc = self.collection.find_one_and_update(
            {"user__id": as_object_id(credential.user_id), "platform": credential.platform},
            {
                "$set": {
                    "access_token": encrypt_data(credential.access_token),
                    "refresh_token": encrypt_data(credential.refresh_token) if credential.refresh_token else None,
                    "expires_at": credential.expires_at,
                    "platform_account_id": credential.platform_account_id,
                    "scopes": list(credential.scopes or []),
                    "meta": dict(credential.meta or {}),
                    "updated_at": now,
                },
                "$inc": {"token_version": 1},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        Log.info(
            f"[credential.py][CredentialStore][upsert][user:{credential.user_id}]"
            f"[platform:{credential.platform}] stored token {mask_token(credential.access_token)}"
        )
        return self._to_credential(doc)

    def update_tokens(self, user_id: str, platform: str, *, access_token: str,
                      refresh_token: Optional[str], expires_at: Optional[datetime]) -> None:
        """Overwrite the token pair in one atomic write after a refresh."""
        now = utcnow()
        set_doc: Dict[str, Any] = {
            "access_token": encrypt_data(access_token),
            "expires_at": expires_at,
            "last_refreshed_at": now,
            "updated_at": now,
        }
        if refresh_token:
            set_doc["refresh_token"] = encrypt_data(refresh_token)

        self.collection.update_one(
            {"user__id": as_object_id(user_id), "platform": platform},
            {
                "$set": set_doc,
                "$inc": {"token_version": 1},
                "$push": {
                    "refresh_history": {
                        "$each": [{"refreshed_at": now, "expires_at": expires_at}],
                        "$slice": -self.HISTORY_LIMIT,
                    }
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )

    # -------------------------------------------------
    # Mapping
    # -------------------------------------------------
    @staticmethod
    def _decrypt(value):
        if not value:
            return None
        return decrypt_data(value)

    def _to_credential(self, doc: Dict[str, Any]) -> Credential:
        return Credential(
            user_id=str(doc.get("user__id")),
            platform=doc.get("platform"),
            access_token=self._decrypt(doc.get("access_token")) or "",
            refresh_token=self._decrypt(doc.get("refresh_token")),
            expires_at=parse_token_expiry(doc.get("expires_at")),
            platform_account_id=doc.get("platform_account_id"),
            scopes=list(doc.get("scopes") or []),
            meta=dict(doc.get("meta") or {}),
            token_version=int(doc.get("token_version") or 0),
        )
