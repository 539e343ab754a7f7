# crosspost/extensions/queue.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq_scheduler import Scheduler

from ..config import PublishingSettings


# -------------------------------------------------------------------
# Retry policy
# -------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """attempts is the total number of executions, the first one included."""
    attempts: int = 3
    backoff_seconds: int = 2
    max_backoff_seconds: int = 300

    @classmethod
    def from_settings(cls, settings: PublishingSettings) -> "RetryPolicy":
        return cls(
            attempts=max(1, settings.max_attempts),
            backoff_seconds=max(0, settings.backoff_seconds),
            max_backoff_seconds=settings.backoff_max_seconds,
        )

    def intervals(self) -> List[int]:
        return [
            min(self.backoff_seconds * (2 ** i), self.max_backoff_seconds)
            for i in range(self.attempts - 1)
        ]

    def to_rq_retry(self) -> Optional[Retry]:
        if self.attempts <= 1:
            return None
        return Retry(max=self.attempts - 1, interval=self.intervals())


# -------------------------------------------------------------------
# Queue / scheduler construction
# -------------------------------------------------------------------

def normalise_queue_name(name: Optional[str], default: str = "publish") -> str:
    n = (name or "").strip()
    return n or default


def get_queue(connection: Redis, settings: PublishingSettings, name: Optional[str] = None) -> Queue:
    return Queue(
        normalise_queue_name(name, settings.queue_name),
        connection=connection,
        default_timeout=settings.job_timeout,
    )


def get_scheduler(connection: Redis, queue: Queue) -> Scheduler:
    # stores scheduled/cron jobs in Redis and moves them into `queue` when due
    return Scheduler(queue=queue, connection=connection)


def ping_redis(connection: Redis) -> bool:
    """Quick health check for Redis."""
    try:
        return bool(connection.ping())
    except RedisError:
        return False
