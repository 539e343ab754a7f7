# crosspost/services/social/enqueuer.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from redis import Redis
from rq.exceptions import InvalidJobOperation, NoSuchJobError
from rq.job import Job, JobStatus
from rq.registry import CanceledJobRegistry

from ...config import PublishingSettings
from ...constants.platforms import REFRESHABLE_PLATFORMS
from ...extensions.queue import RetryPolicy, get_queue, get_scheduler
from ...utils.helpers import make_log_tag
from ...utils.logger import Log
from ...utils.social.token_utils import utcnow
from .errors import PublishValidationError, UnsupportedPlatformError
from .types import PublishRequest

JOB_FUNC = "crosspost.services.social.jobs.run_job"

JOB_PUBLISH = "publish"
JOB_UPDATE = "update"
JOB_REFRESH_TOKEN = "refreshToken"
JOB_SWEEP_EXPIRING_TOKENS = "sweepExpiringTokens"
JOB_TYPES = (JOB_PUBLISH, JOB_UPDATE, JOB_REFRESH_TOKEN, JOB_SWEEP_EXPIRING_TOKENS)

# RQ status -> lifecycle state reported to callers
STATE_BY_RQ_STATUS = {
    JobStatus.QUEUED: "waiting",
    JobStatus.SCHEDULED: "scheduled",
    JobStatus.DEFERRED: "waiting",
    JobStatus.STARTED: "active",
    JobStatus.FINISHED: "completed",
    JobStatus.FAILED: "failed",
    JobStatus.STOPPED: "failed",
    JobStatus.CANCELED: "cancelled",
}


def sweep_schedule_id(platform: str) -> str:
    return f"crosspost:sweep-expiring-tokens:{platform}"


class PublishJobQueue:
    """
    Durable job queue on RQ.

    Every job runs `run_job(job_type, payload)`; retries follow RetryPolicy
    (exponential backoff, fixed attempt ceiling). Failed jobs stay in the
    failed registry for `failure_ttl` seconds so operators can inspect and
    requeue them.
    """

    def __init__(self, connection: Redis, *, settings: Optional[PublishingSettings] = None,
                 supported_platforms: Optional[Iterable[str]] = None):
        self.connection = connection
        self.settings = settings or PublishingSettings()
        self.queue = get_queue(connection, self.settings)
        self.retry_policy = RetryPolicy.from_settings(self.settings)
        self.supported_platforms = set(supported_platforms) if supported_platforms else None

    # -------------------------------------------------
    # Enqueue
    # -------------------------------------------------
    def enqueue(self, job_type: str, payload: Dict[str, Any], *,
                retry_policy: Optional[RetryPolicy] = None, description: Optional[str] = None,
                scheduled_at: Optional[datetime] = None) -> Job:
        """
        Enqueue now, or hold the job in the scheduled registry until
        `scheduled_at` (naive values are UTC). A time in the past runs now.
        """
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type: {job_type}")
        policy = retry_policy or self.retry_policy

        meta = {"job_type": job_type, "attempts": 0, "max_attempts": policy.attempts}
        options = dict(
            job_timeout=self.settings.job_timeout,
            result_ttl=self.settings.result_ttl,
            failure_ttl=self.settings.failure_ttl,
            retry=policy.to_rq_retry(),
            description=description or f"{job_type} {payload.get('platform', '')}".strip(),
            meta=meta,
        )

        if scheduled_at is not None and scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

        if scheduled_at is not None and scheduled_at > utcnow():
            meta["scheduled_at"] = scheduled_at.isoformat()
            job = self.queue.enqueue_at(scheduled_at, JOB_FUNC, job_type, payload, **options)
        else:
            job = self.queue.enqueue(JOB_FUNC, job_type, payload, **options)

        Log.info(
            f"{make_log_tag('enqueuer.py', 'PublishJobQueue', 'enqueue', job_type=job_type)} "
            f"job_id={job.id} platform={payload.get('platform')} user={payload.get('user_id')} "
            f"scheduled_at={meta.get('scheduled_at', 'now')}"
        )
        return job

    def enqueue_publish(self, user_id: str, request: PublishRequest,
                        platforms: Optional[Iterable[str]] = None,
                        scheduled_at: Optional[datetime] = None) -> Dict[str, str]:
        """One job per target platform so each retries and fails on its own."""
        request.validate()
        targets = [p.strip().lower() for p in (platforms or request.platforms) if p and p.strip()]
        if not targets:
            raise PublishValidationError("At least one target platform is required")
        self._check_platforms(targets)

        job_ids: Dict[str, str] = {}
        for platform in dict.fromkeys(targets):
            job = self.enqueue(JOB_PUBLISH, {
                "user_id": str(user_id),
                "platform": platform,
                "request": request.to_dict(),
            }, scheduled_at=scheduled_at)
            job_ids[platform] = job.id
        return job_ids

    def enqueue_update(self, user_id: str, platform: str, external_id: str, request: PublishRequest) -> str:
        request.validate()
        self._check_platforms([platform])
        return self.enqueue(JOB_UPDATE, {
            "user_id": str(user_id),
            "platform": platform.lower(),
            "external_id": str(external_id),
            "request": request.to_dict(),
        }).id

    def enqueue_refresh_token(self, user_id: str, platform: str, *, force: bool = False) -> str:
        self._check_platforms([platform])
        return self.enqueue(JOB_REFRESH_TOKEN, {
            "user_id": str(user_id),
            "platform": platform.lower(),
            "force": bool(force),
        }).id

    def enqueue_sweep_expiring_tokens(self, platform: str) -> str:
        self._check_platforms([platform])
        return self.enqueue(JOB_SWEEP_EXPIRING_TOKENS, {"platform": platform.lower()}).id

    # -------------------------------------------------
    # Recurring schedule
    # -------------------------------------------------
    def schedule_token_sweeps(self, platforms: Optional[Iterable[str]] = None,
                              cron: Optional[str] = None, scheduler=None) -> List[str]:
        """Register one daily sweep per platform. Re-registering replaces the old entry."""
        scheduler = scheduler or get_scheduler(self.connection, self.queue)
        cron = cron or self.settings.sweep_cron
        scheduled: List[str] = []

        for platform in (platforms or REFRESHABLE_PLATFORMS):
            schedule_id = sweep_schedule_id(platform)
            if schedule_id in scheduler:
                scheduler.cancel(schedule_id)
            scheduler.cron(
                cron,
                func=JOB_FUNC,
                args=[JOB_SWEEP_EXPIRING_TOKENS, {"platform": platform}],
                repeat=None,
                queue_name=self.queue.name,
                id=schedule_id,
                timeout=self.settings.job_timeout,
                result_ttl=self.settings.result_ttl,
                meta={"job_type": JOB_SWEEP_EXPIRING_TOKENS, "attempts": 0},
            )
            scheduled.append(schedule_id)

        Log.info(f"[enqueuer.py][PublishJobQueue][schedule_token_sweeps] cron='{cron}' ids={scheduled}")
        return scheduled

    # -------------------------------------------------
    # Introspection
    # -------------------------------------------------
    def get_stats(self) -> Dict[str, int]:
        q = self.queue
        return {
            "waiting": q.count,
            "active": q.started_job_registry.count,
            "scheduled": q.scheduled_job_registry.count,
            "deferred": q.deferred_job_registry.count,
            "completed": q.finished_job_registry.count,
            "failed": q.failed_job_registry.count,
            "cancelled": CanceledJobRegistry(queue=q).count,
        }

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        try:
            job = Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None
        return self.describe(job)

    def list_failed(self, limit: int = 50) -> List[Dict[str, Any]]:
        ids = self.queue.failed_job_registry.get_job_ids(0, max(0, limit - 1))
        out = []
        for job_id in ids:
            info = self.get_job(job_id)
            if info:
                out.append(info)
        return out

    def requeue_failed(self, job_id: str) -> bool:
        try:
            self.queue.failed_job_registry.requeue(job_id)
            return True
        except (NoSuchJobError, InvalidJobOperation) as e:
            Log.info(f"[enqueuer.py][PublishJobQueue][requeue_failed][{job_id}] {e}")
            return False

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a job that has not started yet (waiting or scheduled)."""
        log_tag = f"[enqueuer.py][PublishJobQueue][cancel_job][{job_id}]"
        try:
            job = Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return False

        status = job.get_status()
        if status not in (JobStatus.QUEUED, JobStatus.SCHEDULED, JobStatus.DEFERRED):
            Log.info(f"{log_tag} not cancellable in status {status}")
            return False
        if status == JobStatus.SCHEDULED:
            self.queue.scheduled_job_registry.remove(job)
        try:
            job.cancel()
        except InvalidJobOperation as e:
            Log.info(f"{log_tag} {e}")
            return False
        Log.info(f"{log_tag} cancelled, was {status}")
        return True

    @staticmethod
    def describe(job: Job) -> Dict[str, Any]:
        status = job.get_status()
        args = list(job.args or [])
        meta = job.meta or {}
        job_type = args[0] if args else meta.get("job_type")
        payload = args[1] if len(args) > 1 and isinstance(args[1], dict) else {}
        if status == JobStatus.FINISHED:
            result = job.return_value()
            outcome = "succeeded"
        elif status == JobStatus.FAILED:
            result = meta.get("result") or None
            outcome = "failed_terminal"
        else:
            result = meta.get("result") or None
            outcome = None

        return {
            "id": job.id,
            "type": job_type,
            "state": STATE_BY_RQ_STATUS.get(status, "unknown"),
            "rq_status": getattr(status, "value", status),
            "platform": payload.get("platform"),
            "user_id": payload.get("user_id"),
            "attempts": int(meta.get("attempts") or 0),
            "max_attempts": meta.get("max_attempts"),
            "retries_left": job.retries_left,
            "enqueued_at": job.enqueued_at.isoformat() if job.enqueued_at else None,
            "started_at": job.started_at.isoformat() if job.started_at else None,
            "ended_at": job.ended_at.isoformat() if job.ended_at else None,
            "outcome": outcome,
            "result": result,
            "error": job.exc_info.strip().splitlines()[-1] if status == JobStatus.FAILED and job.exc_info else None,
        }

    def _check_platforms(self, platforms: Iterable[str]) -> None:
        if self.supported_platforms is None:
            return
        for p in platforms:
            if p.lower() not in self.supported_platforms:
                raise UnsupportedPlatformError(f"Unsupported platform: {p}", code="unsupported_platform")

    def close(self) -> None:
        self.connection.close()
