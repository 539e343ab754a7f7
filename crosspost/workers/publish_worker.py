# crosspost/workers/publish_worker.py
from __future__ import annotations

import argparse
import sys

from rq.worker_pool import WorkerPool
from rq_scheduler import Scheduler

from ..config import PublishingSettings
from ..constants.platforms import REFRESHABLE_PLATFORMS
from ..extensions.queue import ping_redis
from ..services.social.runtime import configure_runtime, shutdown_runtime
from ..utils.logger import Log


def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Run the publishing worker pool")
    parser.add_argument("--concurrency", type=int, default=None, help="number of worker processes")
    parser.add_argument("--burst", action="store_true", help="exit once the queue is empty")
    parser.add_argument("--no-schedule", action="store_true", help="do not (re)register the daily token sweeps")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    settings = PublishingSettings.from_config()
    if args.concurrency:
        settings.concurrency = args.concurrency

    runtime = configure_runtime(settings)
    log_tag = f"[publish_worker.py][main][queue:{settings.queue_name}][concurrency:{settings.concurrency}]"
    try:
        if not ping_redis(runtime.redis.connection):
            Log.error(f"{log_tag} redis ping failed; the pool will keep retrying the connection")
        runtime.ensure_indexes()
        if not args.no_schedule:
            runtime.queue.schedule_token_sweeps(REFRESHABLE_PLATFORMS, settings.sweep_cron)

        Log.info(f"{log_tag} starting worker pool")
        pool = WorkerPool(
            [settings.queue_name],
            connection=runtime.redis.connection,
            num_workers=max(1, settings.concurrency),
        )
        pool.start(burst=args.burst)
    finally:
        shutdown_runtime()
        Log.info(f"{log_tag} stopped")
    return 0


def run_scheduler(argv=None) -> int:
    """Moves due cron/scheduled jobs (the daily token sweeps) into the queue."""
    settings = PublishingSettings.from_config()
    runtime = configure_runtime(settings)
    try:
        scheduler = Scheduler(queue=runtime.queue.queue, connection=runtime.redis.connection, interval=60)
        Log.info(f"[publish_worker.py][run_scheduler][queue:{settings.queue_name}] scheduler running")
        scheduler.run()
    finally:
        shutdown_runtime()
    return 0


if __name__ == "__main__":
    sys.exit(main())
