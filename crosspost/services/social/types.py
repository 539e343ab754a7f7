# crosspost/services/social/types.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ...constants.platforms import (
    CONTENT_TYPE_CAROUSEL,
    MEDIA_IMAGE,
    MEDIA_TYPES,
    MEDIA_VIDEO,
)
from .errors import PublishingError, PublishValidationError


@dataclass
class MediaItem:
    type: str
    url: str

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MediaItem":
        mtype = (raw.get("type") or raw.get("asset_type") or "").strip().lower()
        return cls(type=mtype, url=(raw.get("url") or "").strip())

    @property
    def is_image(self) -> bool:
        return self.type == MEDIA_IMAGE

    @property
    def is_video(self) -> bool:
        return self.type == MEDIA_VIDEO


@dataclass
class PublishRequest:
    """Normalized post payload handed to every adapter."""
    title: str = ""
    body: str = ""
    media: List[MediaItem] = field(default_factory=list)
    hashtags: List[str] = field(default_factory=list)
    mentions: List[str] = field(default_factory=list)
    content_type: Optional[str] = None
    platforms: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PublishRequest":
        raw = raw or {}
        return cls(
            title=(raw.get("title") or "").strip(),
            body=(raw.get("body") or "").strip(),
            media=[m if isinstance(m, MediaItem) else MediaItem.from_dict(m) for m in (raw.get("media") or [])],
            hashtags=[str(h).lstrip("#").strip() for h in (raw.get("hashtags") or []) if str(h).strip("# ")],
            mentions=[str(m).lstrip("@").strip() for m in (raw.get("mentions") or []) if str(m).strip("@ ")],
            content_type=(raw.get("content_type") or raw.get("contentType") or None),
            platforms=[str(p).strip().lower() for p in (raw.get("platforms") or [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        if not (self.title or self.body or self.media):
            raise PublishValidationError("At least one of title, body or media is required")
        for idx, item in enumerate(self.media):
            if item.type not in MEDIA_TYPES:
                raise PublishValidationError(f"media[{idx}].type must be one of {list(MEDIA_TYPES)}")
            if not item.url.startswith(("http://", "https://")):
                raise PublishValidationError(f"media[{idx}].url must be an http(s) URL")

    @property
    def images(self) -> List[MediaItem]:
        return [m for m in self.media if m.is_image]

    @property
    def videos(self) -> List[MediaItem]:
        return [m for m in self.media if m.is_video]

    @property
    def wants_carousel(self) -> bool:
        return self.content_type == CONTENT_TYPE_CAROUSEL or len(self.media) > 1


@dataclass
class PublishResult:
    success: bool
    external_post_id: Optional[str] = None
    permalink: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: bool = False
    platform: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, external_post_id: str, permalink: Optional[str] = None, *,
           platform: Optional[str] = None, raw: Optional[Dict[str, Any]] = None) -> "PublishResult":
        return cls(
            success=True,
            external_post_id=str(external_post_id),
            permalink=permalink or str(external_post_id),
            platform=platform,
            raw=raw,
        )

    @classmethod
    def failure(cls, error: str, *, kind: str = "protocol", code: Any = None,
                retryable: bool = False, platform: Optional[str] = None,
                external_post_id: Optional[str] = None) -> "PublishResult":
        return cls(
            success=False,
            external_post_id=external_post_id,
            error=error,
            error_code=None if code is None else str(code),
            error_kind=kind,
            retryable=retryable,
            platform=platform,
        )

    @classmethod
    def from_error(cls, exc: PublishingError, *, platform: Optional[str] = None,
                   external_post_id: Optional[str] = None) -> "PublishResult":
        return cls.failure(
            exc.message,
            kind=exc.kind,
            code=exc.code,
            retryable=exc.retryable,
            platform=platform,
            external_post_id=external_post_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Metrics:
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    reach: Optional[int] = None
    engagement: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TokenGrant:
    """What a platform token endpoint hands back after a refresh."""
    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scopes: Optional[List[str]] = None


@runtime_checkable
class TokenManager(Protocol):
    """Capability contract every platform token manager implements."""
    platform: str

    def get_access_token(self) -> str: ...

    def is_expired(self) -> bool: ...

    def refresh(self) -> TokenGrant: ...

    def verify_auth(self) -> bool: ...

    def valid_access_token(self) -> str: ...

    def force_refresh(self) -> TokenGrant: ...


@runtime_checkable
class PublishingAdapter(Protocol):
    """The five-method contract the queue worker relies on."""
    platform: str

    def publish(self, request: PublishRequest) -> PublishResult: ...

    def update(self, external_id: str, request: PublishRequest) -> PublishResult: ...

    def delete(self, external_id: str) -> bool: ...

    def get_metrics(self, external_id: str) -> Metrics: ...

    def verify_auth(self) -> bool: ...


def format_caption(request: PublishRequest, *, include_title: bool = True,
                   include_mentions: bool = False) -> str:
    """title, blank line, body, blank line, #tags [@mentions]"""
    parts: List[str] = []
    if include_title and request.title:
        parts.append(request.title)
    if request.body:
        parts.append(request.body)
    if request.hashtags:
        parts.append(" ".join(f"#{h}" for h in request.hashtags))
    if include_mentions and request.mentions:
        parts.append(" ".join(f"@{m}" for m in request.mentions))
    return "\n\n".join(parts)
