"""
Bounded polling for remote "create task -> poll until ready -> fetch result" jobs.

The poller knows nothing about HTTP. Each attempt is classified by the caller
into ready / not yet / fatal, and the loop stops on whichever of the attempt
cap or the wall-clock budget is hit first.
"""
import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class AttemptStatus(str, enum.Enum):
    READY = "ready"
    NOT_YET = "not_yet"
    FATAL = "fatal"


@dataclass(frozen=True)
class PollAttemptResult:
    """Classification of a single poll attempt"""
    status: AttemptStatus
    payload: Any = None
    cause: Optional[BaseException] = None

    @classmethod
    def ready(cls, payload: Any) -> "PollAttemptResult":
        return cls(AttemptStatus.READY, payload=payload)

    @classmethod
    def not_yet(cls) -> "PollAttemptResult":
        return cls(AttemptStatus.NOT_YET)

    @classmethod
    def fatal(cls, cause: BaseException) -> "PollAttemptResult":
        return cls(AttemptStatus.FATAL, cause=cause)


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass
class RemoteTask:
    """Handle on a job created by a remote API. Only polling reads update it."""
    task_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: TaskStatus = TaskStatus.PENDING
    payload: Any = None
    context: dict = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status != TaskStatus.PENDING


class Outcome(str, enum.Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class PollOutcome:
    outcome: Outcome
    attempts_used: int
    elapsed_ms: int
    payload: Any = None
    cause: Optional[BaseException] = None

    @property
    def is_ready(self) -> bool:
        return self.outcome == Outcome.READY


@dataclass(frozen=True)
class PollLimits:
    max_attempts: int
    interval_seconds: float
    max_elapsed_seconds: float
    initial_delay_seconds: float = 0.0


def poll(
    operation: Callable[[], PollAttemptResult],
    max_attempts: int,
    interval: float,
    max_elapsed: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollOutcome:
    """
    Drive `operation` until it is ready, fails, or a budget runs out.

    Args:
        operation: Performs one attempt and classifies it
        max_attempts: Attempt cap (at least one attempt is always made)
        interval: Seconds to wait between attempts
        max_elapsed: Hard wall-clock budget in seconds, measured from the call

    Returns:
        PollOutcome tagged READY, FAILED or TIMED_OUT
    """
    started = clock()
    deadline = started + max_elapsed
    attempts = 0

    def _elapsed_ms() -> int:
        return int((clock() - started) * 1000)

    while attempts < max(max_attempts, 1):
        if attempts > 0:
            remaining = deadline - clock()
            if remaining <= 0:
                break
            # Never sleep past the budget
            sleep(min(interval, remaining))
            if clock() >= deadline:
                break

        attempts += 1
        result = operation()

        if result.status == AttemptStatus.READY:
            return PollOutcome(Outcome.READY, attempts, _elapsed_ms(), payload=result.payload)

        if result.status == AttemptStatus.FATAL:
            logger.warning(f"Poll attempt {attempts} failed fatally: {result.cause}")
            return PollOutcome(Outcome.FAILED, attempts, _elapsed_ms(), cause=result.cause)

        logger.debug(f"Poll attempt {attempts}/{max_attempts}: not ready yet")

        if clock() >= deadline:
            break

    elapsed = _elapsed_ms()
    logger.info(f"Polling timed out after {attempts} attempts ({elapsed}ms)")
    return PollOutcome(Outcome.TIMED_OUT, attempts, elapsed)


def run_bounded_task(
    submit: Callable[[], RemoteTask],
    check: Callable[[RemoteTask], PollAttemptResult],
    limits: PollLimits,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollOutcome:
    """
    Submit a remote job once, then poll it under `limits`.

    Errors raised by `submit` propagate untouched. A task whose terminal status
    has been observed is never polled again.
    """
    started = clock()
    task = submit()
    logger.info(f"Remote task {task.task_id} submitted")

    if limits.initial_delay_seconds > 0:
        sleep(min(limits.initial_delay_seconds, limits.max_elapsed_seconds))

    def _attempt() -> PollAttemptResult:
        result = check(task)
        if result.status == AttemptStatus.READY:
            task.status = TaskStatus.READY
            task.payload = result.payload
        elif result.status == AttemptStatus.FATAL:
            task.status = TaskStatus.FAILED
        return result

    # The budget covers the submit call and the initial delay too
    spent = clock() - started
    outcome = poll(
        _attempt,
        max_attempts=limits.max_attempts,
        interval=limits.interval_seconds,
        max_elapsed=max(limits.max_elapsed_seconds - spent, 0.0),
        clock=clock,
        sleep=sleep,
    )
    return PollOutcome(
        outcome.outcome,
        outcome.attempts_used,
        int((clock() - started) * 1000),
        payload=outcome.payload,
        cause=outcome.cause,
    )
