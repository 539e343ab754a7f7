from __future__ import annotations

from flask import current_app, request
from flask.views import MethodView
from flask_smorest import Blueprint

from ...constants.service_code import ERROR_MESSAGES
from ...extensions.queue import ping_redis
from ...schemas.social.publish_schema import (
    FailedJobsQuerySchema,
    PublishJobSchema,
    RefreshTokenSchema,
    UpdateJobSchema,
)
from ...services.social.factory import publish_to_platforms
from ...services.social.types import PublishRequest
from ...utils.auth import internal_key_required
from ...utils.helpers import make_log_tag
from ...utils.json_response import prepared_response
from ...utils.logger import Log

# ------------------------------------------------------------------
# Blueprint
# ------------------------------------------------------------------
blp_social_publish = Blueprint(
    "social_publish", __name__, description="Publish orchestration and job introspection"
)


def _runtime():
    runtime = current_app.extensions.get("crosspost_runtime")
    if runtime is None:
        raise RuntimeError("Publishing runtime is not attached to this app")
    return runtime


def _log_tag(resource, method, **kwargs):
    return make_log_tag("publish_resource.py", resource, method, f"ip:{request.remote_addr}", **kwargs)


# ------------------------------------------------------------------
# HEALTH
# ------------------------------------------------------------------
@blp_social_publish.route("/social/health", methods=["GET"])
class HealthResource(MethodView):

    def get(self):
        runtime = _runtime()
        redis_ok = ping_redis(runtime.redis.connection)
        data = {"redis_ok": redis_ok, "queue": runtime.settings.queue_name}
        if not redis_ok:
            return prepared_response(False, "SERVICE_UNAVAILABLE", "Queue backend unreachable", data=data)
        return prepared_response(True, "OK", "Publishing service healthy", data=data)


# ------------------------------------------------------------------
# PUBLISH
# ------------------------------------------------------------------
@blp_social_publish.route("/social/publish", methods=["POST"])
class PublishResource(MethodView):

    @internal_key_required
    @blp_social_publish.arguments(PublishJobSchema)
    def post(self, payload):
        user_id = payload["user_id"]
        platforms = payload["platforms"]
        log_tag = _log_tag("PublishResource", "post", user=user_id, mode=payload["mode"])

        runtime = _runtime()
        unsupported = [p for p in platforms if not runtime.factory.is_supported(p)]
        if unsupported:
            return prepared_response(
                False, "BAD_REQUEST", ERROR_MESSAGES["PLATFORM_NOT_SUPPORTED"],
                errors={"platforms": unsupported},
            )

        publish_request = PublishRequest.from_dict(payload)

        if payload["mode"] == "direct":
            outcome = publish_to_platforms(runtime.factory, user_id, publish_request, platforms)
            Log.info(f"{log_tag} direct publish status={outcome['status']}")
            return prepared_response(
                outcome["status"] != "failed", "OK", f"Publish {outcome['status']}", data=outcome,
            )

        scheduled_at = payload.get("scheduled_at")
        job_ids = runtime.queue.enqueue_publish(user_id, publish_request, platforms, scheduled_at=scheduled_at)
        Log.info(f"{log_tag} queued jobs={job_ids} scheduled_at={scheduled_at}")
        data = {"jobs": job_ids}
        if scheduled_at:
            data["scheduled_at"] = scheduled_at.isoformat()
        return prepared_response(True, "ACCEPTED", "Publish scheduled" if scheduled_at else "Publish queued", data=data)


@blp_social_publish.route("/social/publish/<string:platform>/<string:external_id>", methods=["PUT"])
class UpdatePublishedResource(MethodView):

    @internal_key_required
    @blp_social_publish.arguments(UpdateJobSchema)
    def put(self, payload, platform, external_id):
        platform = platform.lower()
        runtime = _runtime()
        if not runtime.factory.is_supported(platform):
            return prepared_response(False, "BAD_REQUEST", ERROR_MESSAGES["PLATFORM_NOT_SUPPORTED"])

        job_id = runtime.queue.enqueue_update(
            payload["user_id"], platform, external_id, PublishRequest.from_dict(payload),
        )
        Log.info(f"{_log_tag('UpdatePublishedResource', 'put', platform=platform)} queued job={job_id}")
        return prepared_response(True, "ACCEPTED", "Update queued", data={"job_id": job_id})


# ------------------------------------------------------------------
# TOKENS
# ------------------------------------------------------------------
@blp_social_publish.route("/social/tokens/<string:platform>/refresh", methods=["POST"])
class RefreshTokenResource(MethodView):

    @internal_key_required
    @blp_social_publish.arguments(RefreshTokenSchema)
    def post(self, payload, platform):
        platform = platform.lower()
        runtime = _runtime()
        if not runtime.factory.is_supported(platform):
            return prepared_response(False, "BAD_REQUEST", ERROR_MESSAGES["PLATFORM_NOT_SUPPORTED"])

        job_id = runtime.queue.enqueue_refresh_token(payload["user_id"], platform, force=payload["force"])
        return prepared_response(True, "ACCEPTED", "Token refresh queued", data={"job_id": job_id})


# ------------------------------------------------------------------
# JOBS
# ------------------------------------------------------------------
@blp_social_publish.route("/social/jobs/stats", methods=["GET"])
class JobStatsResource(MethodView):

    @internal_key_required
    def get(self):
        return prepared_response(True, "OK", "Job stats", data=_runtime().queue.get_stats())


@blp_social_publish.route("/social/jobs/failed", methods=["GET"])
class FailedJobsResource(MethodView):

    @internal_key_required
    @blp_social_publish.arguments(FailedJobsQuerySchema, location="query")
    def get(self, args):
        jobs = _runtime().queue.list_failed(limit=args["limit"])
        return prepared_response(True, "OK", "Failed jobs", data={"jobs": jobs})


@blp_social_publish.route("/social/jobs/<string:job_id>", methods=["GET", "DELETE"])
class JobResource(MethodView):

    @internal_key_required
    def get(self, job_id):
        job = _runtime().queue.get_job(job_id)
        if job is None:
            return prepared_response(False, "NOT_FOUND", ERROR_MESSAGES["JOB_NOT_FOUND"])
        return prepared_response(True, "OK", "Job", data=job)

    @internal_key_required
    def delete(self, job_id):
        queue = _runtime().queue
        job = queue.get_job(job_id)
        if job is None:
            return prepared_response(False, "NOT_FOUND", ERROR_MESSAGES["JOB_NOT_FOUND"])
        if not queue.cancel_job(job_id):
            return prepared_response(
                False, "CONFLICT", ERROR_MESSAGES["JOB_NOT_CANCELLABLE"], errors={"state": job["state"]},
            )
        Log.info(f"{_log_tag('JobResource', 'delete', job=job_id)} cancelled")
        return prepared_response(True, "OK", "Job cancelled", data={"job_id": job_id})


@blp_social_publish.route("/social/jobs/<string:job_id>/requeue", methods=["POST"])
class RequeueJobResource(MethodView):

    @internal_key_required
    def post(self, job_id):
        if not _runtime().queue.requeue_failed(job_id):
            return prepared_response(False, "NOT_FOUND", ERROR_MESSAGES["JOB_NOT_FOUND"])
        return prepared_response(True, "ACCEPTED", "Job requeued", data={"job_id": job_id})
