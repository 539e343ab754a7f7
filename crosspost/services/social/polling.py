# crosspost/services/social/polling.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from ...utils.logger import Log

STATE_READY = "ready"
STATE_FAILED = "failed"
STATE_PROCESSING = "processing"


@dataclass(frozen=True)
class PollPolicy:
    interval_seconds: float
    max_attempts: int

    @property
    def max_wait_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts


@dataclass
class PollOutcome:
    state: str  # ready | failed | timeout
    attempts: int
    detail: Any = None

    @property
    def ready(self) -> bool:
        return self.state == STATE_READY


def poll_until_ready(
    check: Callable[[], Tuple[str, Any]],
    policy: PollPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    log_tag: str = "",
) -> PollOutcome:
    """
    Call `check()` up to `policy.max_attempts` times, sleeping `interval_seconds`
    between calls. `check` returns (state, detail) where state is one of
    ready / failed / processing.

    Exits early on ready or failed. Running out of attempts is a timeout,
    never a success.
    """
    detail: Optional[Any] = None
    for attempt in range(1, policy.max_attempts + 1):
        state, detail = check()
        Log.info(f"{log_tag} poll attempt={attempt}/{policy.max_attempts} state={state}")

        if state == STATE_READY:
            return PollOutcome(STATE_READY, attempt, detail)
        if state == STATE_FAILED:
            return PollOutcome(STATE_FAILED, attempt, detail)

        if attempt < policy.max_attempts:
            sleep(policy.interval_seconds)

    return PollOutcome("timeout", policy.max_attempts, detail)
