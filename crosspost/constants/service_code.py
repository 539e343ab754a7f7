HTTP_STATUS_CODES = {
    "OK": 200,
    "CREATED": 201,
    "ACCEPTED": 202,
    "NO_CONTENT": 204,
    "BAD_REQUEST": 400,
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "VALIDATION_ERROR": 422,
    "TOO_MANY_REQUESTS": 429,
    "INTERNAL_SERVER_ERROR": 500,
    "BAD_GATEWAY": 502,
    "SERVICE_UNAVAILABLE": 503,
}

ERROR_MESSAGES = {
    "VALIDATION_FAILED": "Validation failed. Please check your inputs.",
    "UNAUTHORIZED_ACCESS": "You are not authorized to access this resource.",
    "JOB_NOT_FOUND": "Job not found.",
    "JOB_NOT_CANCELLABLE": "Only waiting or scheduled jobs can be cancelled.",
    "PLATFORM_NOT_SUPPORTED": "Platform is not supported.",
    "RECONNECT_PLATFORM": "Credential could not be refreshed. Please reconnect the platform.",
}

# error kind -> HTTP status used by the operational API
ERROR_KIND_STATUS = {
    "auth": "UNAUTHORIZED",
    "validation": "VALIDATION_ERROR",
    "unsupported": "BAD_REQUEST",
    "protocol": "BAD_GATEWAY",
    "rate_limited": "TOO_MANY_REQUESTS",
    "transient": "SERVICE_UNAVAILABLE",
}
