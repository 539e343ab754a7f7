from flask import jsonify
from ..constants.service_code import HTTP_STATUS_CODES


def prepared_response(status, status_code, message, data=None, errors=None):
    # message, status_code and success are always present
    mandatory_fields = ["message", "status_code", "success"]

    all_fields = {
        "message": f"{message}",
        "status_code": HTTP_STATUS_CODES[status_code],
        "success": status,
        "data": data,
        "errors": errors,
    }

    response_data = {
        key: value for key, value in all_fields.items()
        if key in mandatory_fields or value is not None
    }

    return jsonify(response_data), HTTP_STATUS_CODES[status_code]
