from typing import Any, List, Optional

from bson import ObjectId


def make_log_tag(file, resource, method, *parts, **kwargs):
    """
    Build the bracketed prefix used on every log line, e.g.
    [instagram_adapter.py][InstagramAdapter][publish][user:1][platform:instagram]
    """
    log_tag = f"[{file}][{resource}][{method}]"
    for part in parts:
        log_tag += f"[{part}]"
    for key, value in kwargs.items():
        log_tag += f"[{key}:{value}]"
    return log_tag


def mask_token(token: Optional[str], keep: int = 4) -> str:
    """Never log a secret in full."""
    if not token:
        return "<none>"
    token = str(token)
    if len(token) <= keep * 2:
        return "*" * len(token)
    return f"{token[:keep]}...{token[-keep:]}"


def as_object_id(value: Any):
    """ObjectId when the value looks like one, otherwise the plain string."""
    if isinstance(value, ObjectId):
        return value
    s = str(value)
    if ObjectId.is_valid(s):
        return ObjectId(s)
    return s


def as_list(v: Any) -> List[Any]:
    if v is None:
        return []
    if isinstance(v, list):
        return v
    if isinstance(v, tuple):
        return list(v)
    return [v]
