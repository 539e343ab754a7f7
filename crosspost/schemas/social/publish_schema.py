from datetime import timezone

from marshmallow import (
    INCLUDE,
    Schema,
    ValidationError,
    fields,
    pre_load,
    validate,
    validates_schema,
)

from ...constants.platforms import CONTENT_TYPES, MEDIA_TYPES


def _is_url(s: str) -> bool:
    return s.startswith("http://") or s.startswith("https://")


class MediaItemSchema(Schema):
    type = fields.Str(required=True, validate=validate.OneOf(MEDIA_TYPES))
    url = fields.Str(required=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if "type" not in data and "asset_type" in data:
                data["type"] = data.pop("asset_type")
            data["type"] = (data.get("type") or "").lower()
        return data

    @validates_schema
    def validate_url(self, data, **kwargs):
        if not _is_url(data["url"]):
            raise ValidationError({"url": ["Invalid URL"]})


class PublishContentSchema(Schema):
    class Meta:
        unknown = INCLUDE

    title = fields.Str(load_default="")
    body = fields.Str(load_default="")
    content_type = fields.Str(
        data_key="contentType", load_default=None, allow_none=True,
        validate=validate.OneOf(CONTENT_TYPES),
    )
    media = fields.List(fields.Nested(MediaItemSchema), load_default=list)
    hashtags = fields.List(fields.Str(), load_default=list)
    mentions = fields.List(fields.Str(), load_default=list)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data.get("media"), dict):
            data["media"] = [data["media"]]
        return data

    @validates_schema
    def validate_content(self, data, **kwargs):
        if not (data.get("title") or "").strip() and not (data.get("body") or "").strip() and not data.get("media"):
            raise ValidationError({"content": ["title, body or media required"]})


class PublishJobSchema(PublishContentSchema):
    user_id = fields.Str(required=True)
    platforms = fields.List(fields.Str(), required=True, validate=validate.Length(min=1))
    mode = fields.Str(load_default="queue", validate=validate.OneOf(["queue", "direct"]))
    scheduled_at = fields.AwareDateTime(load_default=None, allow_none=True, default_timezone=timezone.utc)

    @pre_load
    def normalize_platforms(self, data, **kwargs):
        platforms = data.get("platforms")
        if isinstance(platforms, str):
            platforms = [platforms]
        if isinstance(platforms, list):
            data["platforms"] = [str(p).strip().lower() for p in platforms if str(p).strip()]
        return data

    @validates_schema
    def validate_schedule(self, data, **kwargs):
        if data.get("scheduled_at") and data.get("mode") == "direct":
            raise ValidationError({"scheduled_at": ["direct mode publishes immediately; use mode=queue to schedule"]})


class UpdateJobSchema(PublishContentSchema):
    user_id = fields.Str(required=True)


class RefreshTokenSchema(Schema):
    user_id = fields.Str(required=True)
    force = fields.Bool(load_default=False)


class FailedJobsQuerySchema(Schema):
    limit = fields.Int(load_default=50, validate=validate.Range(min=1, max=500))
