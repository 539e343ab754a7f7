# crosspost/services/social/jobs.py
from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from rq import get_current_job

from ...config import PublishingSettings
from ...utils.helpers import make_log_tag
from ...utils.logger import Log
from ...utils.social.token_utils import days_until_expiry, utcnow
from .enqueuer import (
    JOB_PUBLISH,
    JOB_REFRESH_TOKEN,
    JOB_SWEEP_EXPIRING_TOKENS,
    JOB_UPDATE,
)
from .errors import (
    JobError,
    PublishingError,
    RetryableJobError,
    TerminalJobError,
    error_from_exception,
)
from .types import PublishRequest, PublishResult


class JobHandlers:
    """
    One handler per job type. Handlers return a JSON-able dict (stored as the
    job result) on success. Failures raise: RetryableJobError has RQ retry
    with backoff, TerminalJobError sends the job to the failed registry
    without another attempt. Both carry the failed result dict.
    """

    def __init__(self, *, factory, store, queue=None, settings: Optional[PublishingSettings] = None,
                 attempt_log=None, clock=None):
        self.factory = factory
        self.store = store
        self.queue = queue
        self.settings = settings or PublishingSettings()
        self.attempt_log = attempt_log
        self.clock = clock or utcnow
        self._routes: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            JOB_PUBLISH: self.publish,
            JOB_UPDATE: self.update,
            JOB_REFRESH_TOKEN: self.refresh_token,
            JOB_SWEEP_EXPIRING_TOKENS: self.sweep_expiring_tokens,
        }

    def dispatch(self, job_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._routes.get(job_type)
        if handler is None:
            # nothing to retry: an unknown type will be unknown next time too
            Log.error(f"[jobs.py][JobHandlers][dispatch] unknown job type {job_type}")
            raise TerminalJobError(f"Unknown job type: {job_type}", result={
                "success": False, "error": f"Unknown job type: {job_type}", "error_kind": "validation",
            })
        return handler(payload or {})

    # -------------------------------------------------
    # publish / update
    # -------------------------------------------------
    def publish(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._run_adapter("publish", payload)

    def update(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._run_adapter("update", payload)

    def _run_adapter(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        user_id = str(payload.get("user_id") or "")
        platform = (payload.get("platform") or "").lower()
        log_tag = make_log_tag("jobs.py", "JobHandlers", operation, user=user_id, platform=platform)

        try:
            request = PublishRequest.from_dict(payload.get("request") or {})
            request.validate()
            adapter = self.factory.create(platform, user_id)
            if operation == "update":
                result = adapter.update(str(payload.get("external_id") or ""), request)
            else:
                result = adapter.publish(request)
        except Exception as e:
            result = PublishResult.from_error(error_from_exception(e), platform=platform)

        result.platform = result.platform or platform
        result_dict = result.to_dict()
        result_dict.pop("raw", None)
        self._record(operation, user_id, platform, result_dict)

        if result.success:
            Log.info(f"{log_tag} done external_id={result.external_post_id} permalink={result.permalink}")
            return result_dict

        if result.retryable:
            Log.info(f"{log_tag} retryable failure kind={result.error_kind} code={result.error_code}: {result.error}")
            raise RetryableJobError(result.error or "retryable failure", result=result_dict)

        Log.error(f"{log_tag} terminal failure kind={result.error_kind} code={result.error_code}: {result.error}")
        raise TerminalJobError(result.error or "terminal failure", result=result_dict)

    def _record(self, operation: str, user_id: str, platform: str, result: Dict[str, Any]) -> None:
        if self.attempt_log is None:
            return
        job = get_current_job()
        try:
            self.attempt_log.record(
                user_id=user_id,
                platform=platform,
                operation=operation,
                result=result,
                job_id=job.id if job else None,
                attempt=(job.meta or {}).get("attempts") if job else None,
            )
        except Exception as e:
            # the publish already happened; a lost audit row must not re-run it
            Log.error(f"[jobs.py][JobHandlers][_record] could not store attempt: {e}")

    # -------------------------------------------------
    # refreshToken
    # -------------------------------------------------
    def refresh_token(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        user_id = str(payload.get("user_id") or "")
        platform = (payload.get("platform") or "").lower()
        log_tag = make_log_tag("jobs.py", "JobHandlers", "refresh_token", user=user_id, platform=platform)

        credential = self.store.get(user_id, platform)
        if credential is None:
            Log.info(f"{log_tag} no credential, skipping")
            return {"success": True, "refreshed": False, "reason": "not_connected"}

        days_left = days_until_expiry(credential.expires_at, now=self.clock())
        if not payload.get("force"):
            if days_left is None:
                return {"success": True, "refreshed": False, "reason": "non_expiring"}
            if days_left > self.settings.refresh_window_days:
                Log.info(f"{log_tag} {days_left:.1f} days left, outside refresh window")
                return {"success": True, "refreshed": False, "reason": "not_due", "days_left": round(days_left, 2)}

        try:
            manager = self.factory.create_token_manager(platform, user_id)
            grant = manager.force_refresh()
        except PublishingError as e:
            if e.retryable:
                raise RetryableJobError(e.message, result=e.to_dict()) from e
            Log.error(f"{log_tag} refresh failed, reconnect required: {e.message}")
            raise TerminalJobError(e.message, result={"success": False, "refreshed": False, **e.to_dict()}) from e
        except Exception as e:
            raise RetryableJobError(f"Token refresh failed: {e}") from e

        Log.info(f"{log_tag} refreshed, expires_in={grant.expires_in}")
        return {"success": True, "refreshed": True, "expires_in": grant.expires_in}

    # -------------------------------------------------
    # sweepExpiringTokens
    # -------------------------------------------------
    def sweep_expiring_tokens(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        platform = (payload.get("platform") or "").lower()
        log_tag = make_log_tag("jobs.py", "JobHandlers", "sweep_expiring_tokens", platform=platform)
        if self.queue is None:
            raise RuntimeError("sweep_expiring_tokens needs a job queue")

        now = self.clock()
        cutoff = now + timedelta(days=self.settings.refresh_window_days)
        enqueued = []
        for credential in self.store.list_expiring(platform, cutoff):
            if credential.expires_at is None:
                continue
            if credential.expires_at < now and not credential.refresh_token:
                # expired with nothing to refresh from: the user has to reconnect
                continue
            enqueued.append(self.queue.enqueue_refresh_token(credential.user_id, platform))

        Log.info(f"{log_tag} enqueued {len(enqueued)} refresh job(s)")
        return {"success": True, "platform": platform, "enqueued": len(enqueued), "job_ids": enqueued}


def run_job(job_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """RQ entry point for every job type."""
    from .runtime import current_runtime

    job = get_current_job()
    if job is not None:
        job.meta["attempts"] = int(job.meta.get("attempts") or 0) + 1
        job.save_meta()
        Log.info(f"[jobs.py][run_job][{job.id}] type={job_type} attempt={job.meta['attempts']}")

    try:
        return current_runtime().handlers.dispatch(job_type, payload)
    except JobError as e:
        if job is not None:
            # failed jobs have no return value; keep the result where describe() finds it
            job.meta["result"] = e.result
            if isinstance(e, TerminalJobError):
                job.retries_left = 0
            job.save()
        raise
