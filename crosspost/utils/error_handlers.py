from flask import jsonify

from ..constants.service_code import ERROR_KIND_STATUS, HTTP_STATUS_CODES
from .logger import Log


# Handle marshmallow ValidationError
def handle_validation_error(error):
    response = {
        "success": False,
        "error": "Validation Error",
        "message": error.messages,
        "status_code": HTTP_STATUS_CODES["BAD_REQUEST"],
    }
    return jsonify(response), HTTP_STATUS_CODES["BAD_REQUEST"]


# Handle PublishingError and its subclasses
def handle_publishing_error(error):
    status = HTTP_STATUS_CODES[ERROR_KIND_STATUS.get(error.kind, "BAD_REQUEST")]
    Log.info(f"[error_handlers.py][handle_publishing_error] kind={error.kind} {error.message}")
    response = {
        "success": False,
        "error": error.kind,
        "message": error.message,
        "error_code": error.code,
        "status_code": status,
    }
    return jsonify(response), status


def handle_runtime_error(error):
    Log.error(f"[error_handlers.py][handle_runtime_error] {error}")
    response = {
        "success": False,
        "error": "Service Unavailable",
        "message": str(error),
        "status_code": HTTP_STATUS_CODES["SERVICE_UNAVAILABLE"],
    }
    return jsonify(response), HTTP_STATUS_CODES["SERVICE_UNAVAILABLE"]
