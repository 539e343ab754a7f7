# crosspost/services/social/runtime.py
from __future__ import annotations

import os
import threading
from typing import Optional

from ...config import PublishingSettings
from ...extensions.db import MongoDB, RedisConnection
from ...models.social.credential import CredentialStore
from ...models.social.publish_attempt import PublishAttemptLog
from ...utils.logger import Log
from .enqueuer import PublishJobQueue
from .factory import AdapterFactory
from .jobs import JobHandlers
from .tokens.locks import RedisTokenLocks


class PublishingRuntime:
    """
    Process-wide publishing state: connections, credential store, adapter
    factory, job queue and handlers.

    Lifecycle: build once per process with configure_runtime(), release with
    shutdown_runtime(). Collaborators receive the pieces they need from here
    by reference.
    """

    def __init__(self, settings: PublishingSettings, *, mongo: Optional[MongoDB] = None,
                 redis: Optional[RedisConnection] = None):
        self.settings = settings
        self.pid = os.getpid()

        self.mongo = mongo or MongoDB()
        if self.mongo.db is None:
            self.mongo.connect(settings.mongo_uri, settings.db_name)
        self.redis = redis or RedisConnection()
        if self.redis.connection is None:
            self.redis.connect(settings.redis_url)

        self.store = CredentialStore(self.mongo.db)
        self.attempt_log = PublishAttemptLog(self.mongo.db)
        self.locks = RedisTokenLocks(
            self.redis.connection,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_wait_seconds,
        )
        self.factory = AdapterFactory(store=self.store, settings=settings, lock_factory=self.locks)
        self.queue = PublishJobQueue(
            self.redis.connection,
            settings=settings,
            supported_platforms=self.factory.supported_platforms(),
        )
        self.handlers = JobHandlers(
            factory=self.factory,
            store=self.store,
            queue=self.queue,
            settings=settings,
            attempt_log=self.attempt_log,
        )

    def ensure_indexes(self) -> None:
        self.store.ensure_indexes()
        self.attempt_log.ensure_indexes()

    def close(self) -> None:
        self.redis.close()
        self.mongo.close()
        Log.info(f"[runtime.py][PublishingRuntime][close] pid={self.pid} released connections")


_lock = threading.Lock()
_runtime = None
_settings: Optional[PublishingSettings] = None


def configure_runtime(settings: Optional[PublishingSettings] = None) -> PublishingRuntime:
    """Build and bind the runtime for this process (worker start, app start)."""
    global _settings
    with _lock:
        _settings = settings or PublishingSettings.from_config()
    runtime = PublishingRuntime(_settings)
    bind_runtime(runtime)
    Log.info(f"[runtime.py][configure_runtime] pid={runtime.pid} queue={_settings.queue_name}")
    return runtime


def bind_runtime(runtime) -> None:
    global _runtime
    with _lock:
        _runtime = runtime


def current_runtime():
    """
    The runtime bound for this process. A forked work-horse inherits the
    parent's object but not its sockets, so it gets its own copy built from the
    same settings; a freshly spawned process configures from the environment.
    """
    with _lock:
        runtime = _runtime
        settings = _settings
    if runtime is not None and getattr(runtime, "pid", os.getpid()) == os.getpid():
        return runtime
    if settings is None:
        # spawned worker process: same environment, so same configuration
        Log.info(f"[runtime.py][current_runtime] pid={os.getpid()} configuring from environment")
        return configure_runtime()
    rebuilt = PublishingRuntime(settings)
    bind_runtime(rebuilt)
    return rebuilt


def shutdown_runtime() -> None:
    global _runtime
    with _lock:
        runtime, _runtime = _runtime, None
    if runtime is not None and getattr(runtime, "pid", None) == os.getpid():
        runtime.close()
