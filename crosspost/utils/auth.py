import hmac
from functools import wraps

from flask import current_app, request

from .json_response import prepared_response
from .logger import Log
from ..constants.service_code import ERROR_MESSAGES

INTERNAL_KEY_HEADER = "X-Internal-Key"


def internal_key_required(f):
    """Service-to-service guard: the caller must present INTERNAL_API_KEY."""
    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get("INTERNAL_API_KEY")
        supplied = request.headers.get(INTERNAL_KEY_HEADER) or ""
        if not expected or not hmac.compare_digest(str(expected), supplied):
            Log.info(f"[auth.py][internal_key_required][ip:{request.remote_addr}] rejected {request.path}")
            return prepared_response(False, "UNAUTHORIZED", ERROR_MESSAGES["UNAUTHORIZED_ACCESS"])
        return f(*args, **kwargs)
    return decorated
