# crosspost/services/social/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional

import requests


class PublishingError(Exception):
    """
    Root of the publishing error taxonomy.

    `kind` drives how callers react:
      - auth:          credential expired/revoked, refresh may recover
      - protocol:      platform rejected a step, surfaced verbatim, never retried
      - transient:     network / 5xx / processing timeout, retried by the queue
      - rate_limited:  transient, platform code passed through untouched
      - validation:    rejected before any network call, never retried
      - unsupported:   operation the platform does not offer
    """
    kind = "protocol"
    retryable = False

    def __init__(self, message: str, *, code: Any = None, status: Optional[int] = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.payload = payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_kind": self.kind,
            "error_code": self.code,
            "retryable": self.retryable,
        }


class AuthError(PublishingError):
    kind = "auth"


class CredentialNotFoundError(AuthError):
    pass


class ProtocolError(PublishingError):
    kind = "protocol"


class UnsupportedOperationError(ProtocolError):
    kind = "unsupported"


class UnsupportedPlatformError(ProtocolError):
    kind = "unsupported"


class TransientError(PublishingError):
    kind = "transient"
    retryable = True


class RateLimitError(TransientError):
    kind = "rate_limited"


class PublishValidationError(PublishingError):
    kind = "validation"


class JobError(Exception):
    """A job handler failure carrying the result dict to keep on the job."""

    def __init__(self, message: str, result: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.result = result or {}


class RetryableJobError(JobError):
    """Raised by job handlers so RQ re-enqueues the job per its Retry policy."""


class TerminalJobError(JobError):
    """
    Raised by job handlers for failures that must not be retried. run_job
    zeroes the job's remaining retries first, so RQ moves it straight to the
    failed registry.
    """


# Graph API (Facebook / Instagram) error codes
GRAPH_AUTH_CODES = {190, 102, 463, 467}
GRAPH_RATE_LIMIT_CODES = {4, 17, 32, 613, 80001, 80002}
GRAPH_TRANSIENT_CODES = {1, 2}


def error_from_status(status: int, message: str, *, code: Any = None,
                      payload: Optional[Dict[str, Any]] = None) -> PublishingError:
    if status in (401, 403):
        return AuthError(message, code=code, status=status, payload=payload)
    if status == 429:
        return RateLimitError(message, code=code if code is not None else status, status=status, payload=payload)
    if status >= 500:
        return TransientError(message, code=code, status=status, payload=payload)
    return ProtocolError(message, code=code, status=status, payload=payload)


def error_from_graph(payload: Dict[str, Any], status: int, prefix: str) -> PublishingError:
    err = (payload or {}).get("error") or {}
    code = err.get("code")
    message = f"{prefix}: {err.get('message') or payload}"
    try:
        code_int = int(code) if code is not None else None
    except (TypeError, ValueError):
        code_int = None

    if code_int in GRAPH_AUTH_CODES:
        return AuthError(message, code=code, status=status, payload=payload)
    if code_int in GRAPH_RATE_LIMIT_CODES:
        return RateLimitError(message, code=code, status=status, payload=payload)
    if code_int in GRAPH_TRANSIENT_CODES or err.get("is_transient"):
        return TransientError(message, code=code, status=status, payload=payload)
    return error_from_status(status, message, code=code, payload=payload)


def error_from_exception(exc: BaseException) -> PublishingError:
    """Map anything raised inside an adapter onto the taxonomy."""
    if isinstance(exc, PublishingError):
        return exc
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return TransientError(f"Network error: {exc}")
    if isinstance(exc, requests.RequestException):
        return TransientError(f"HTTP error: {exc}")
    return TransientError(f"Unexpected error: {exc}")
