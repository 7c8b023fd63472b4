"""Wait for asynchronous tasks to reach a terminal state.

Mutating calls only enqueue a task. :class:`TaskPoller` keeps fetching the
task record until its status is SUCCEEDED, FAILED or CANCELED, and raises
:class:`PollTimeoutError` once the policy deadline passes. Every fetch is
handed the time left before the deadline, so a slow read cannot overrun it. FAILED and
CANCELED records are returned, not raised; callers branch on
``TaskRecord.is_successful``.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Union

from .errors import ConfigurationError, PollCancelledError, PollTimeoutError, RequestTimeoutError
from .logger import BoundLogger, create_logger
from .types import TaskHandle, TaskRecord, TaskStatus

DEFAULT_POLL_INTERVAL = 0.05
DEFAULT_POLL_TIMEOUT = 5.0
DEFAULT_MAX_INTERVAL = 1.0

TaskRef = Union[int, TaskHandle]
# fetch(task_uid, timeout=seconds left or None)
Fetch = Callable[..., TaskRecord]
AsyncFetch = Callable[..., Awaitable[TaskRecord]]


@dataclass(frozen=True)
class PollPolicy:
    """How often to poll and for how long.

    ``backoff`` multiplies the interval after every non-terminal observation
    (1.0 keeps it fixed) and is capped at ``max_interval``. ``timeout=None``
    polls until the task finishes; use :meth:`without_timeout` to ask for it.
    """

    interval: float = DEFAULT_POLL_INTERVAL
    timeout: float | None = DEFAULT_POLL_TIMEOUT
    backoff: float = 1.0
    max_interval: float = DEFAULT_MAX_INTERVAL

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ConfigurationError(f"poll interval must be positive, got {self.interval}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"poll timeout must be positive or None, got {self.timeout}")
        if self.backoff < 1.0:
            raise ConfigurationError(f"poll backoff must be >= 1.0, got {self.backoff}")

    @classmethod
    def without_timeout(cls, interval: float = DEFAULT_POLL_INTERVAL, backoff: float = 1.0) -> "PollPolicy":
        return cls(interval=interval, timeout=None, backoff=backoff)

    def delays(self) -> Iterator[float]:
        delay = self.interval
        ceiling = max(self.max_interval, self.interval)
        while True:
            yield delay
            if self.backoff > 1.0:
                delay = min(delay * self.backoff, ceiling)


def _task_uid(task: TaskRef) -> int:
    return task.task_uid if isinstance(task, TaskHandle) else task


class _PollRun:
    def __init__(self, task_uid: int, policy: PollPolicy, clock: Callable[[], float], logger: BoundLogger) -> None:
        self.task_uid = task_uid
        self.fetches = 0
        self._clock = clock
        self._logger = logger
        self._started = clock()
        self._deadline = None if policy.timeout is None else self._started + policy.timeout
        self._delays = policy.delays()
        self._last: TaskRecord | None = None

    @property
    def last_status(self) -> TaskStatus | None:
        return self._last.status if self._last else None

    def observe(self, record: TaskRecord) -> TaskRecord | None:
        self.fetches += 1
        self._logger.trace("task %s observed status=%s fetch=%d", self.task_uid, record.status, self.fetches)
        if self._last is not None and record.status.rank < self._last.status.rank:
            # statuses only move forward; a stale read is ignored
            self._logger.warn(
                "task %s went from %s back to %s, ignoring", self.task_uid, self._last.status, record.status
            )
            return None
        self._last = record
        if record.is_terminal:
            self._logger.debug(
                "task %s finished status=%s after %d fetches", self.task_uid, record.status, self.fetches
            )
            return record
        return None

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` when polling is unbounded."""
        if self._deadline is None:
            return None
        now = self._clock()
        if now >= self._deadline:
            raise self.timed_out(now)
        return self._deadline - now

    def next_delay(self) -> float:
        delay = next(self._delays)
        remaining = self.remaining()
        return delay if remaining is None else min(delay, remaining)

    def timed_out(self, now: float | None = None) -> PollTimeoutError:
        elapsed = (self._clock() if now is None else now) - self._started
        return PollTimeoutError(
            f"task {self.task_uid} not completed after {elapsed:.3f}s (last status: {self.last_status})",
            task_uid=self.task_uid,
            last_status=self.last_status,
            elapsed=elapsed,
        )

    def cancelled(self) -> PollCancelledError:
        return PollCancelledError(
            f"polling task {self.task_uid} cancelled (last status: {self.last_status})",
            context={"task_uid": self.task_uid, "last_status": self.last_status},
        )


class TaskPoller:
    """Blocking poller; ``fetch(task_uid, timeout=...)`` returns the current record of a task."""

    def __init__(
        self,
        fetch: Fetch,
        *,
        policy: PollPolicy | None = None,
        logger: BoundLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetch = fetch
        self._policy = policy or PollPolicy()
        self._logger = (logger or create_logger()).child("poller")
        self._clock = clock
        self._sleep = sleep

    @property
    def policy(self) -> PollPolicy:
        return self._policy

    def wait(
        self,
        task: TaskRef,
        *,
        policy: PollPolicy | None = None,
        cancel: threading.Event | None = None,
    ) -> TaskRecord:
        run = _PollRun(_task_uid(task), policy or self._policy, self._clock, self._logger)
        while True:
            if cancel is not None and cancel.is_set():
                raise run.cancelled()
            done = run.observe(self._fetch_once(run))
            if done is not None:
                return done
            delay = run.next_delay()
            if cancel is not None:
                if cancel.wait(delay):
                    raise run.cancelled()
            else:
                self._sleep(delay)

    def _fetch_once(self, run: _PollRun) -> TaskRecord:
        remaining = run.remaining()
        try:
            return self._fetch(run.task_uid, timeout=remaining)
        except RequestTimeoutError as exc:
            if remaining is None:
                raise
            raise run.timed_out() from exc


class AsyncTaskPoller:
    """Coroutine flavour of :class:`TaskPoller`; cancelling the awaiting task stops it."""

    def __init__(
        self,
        fetch: AsyncFetch,
        *,
        policy: PollPolicy | None = None,
        logger: BoundLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetch = fetch
        self._policy = policy or PollPolicy()
        self._logger = (logger or create_logger()).child("poller")
        self._clock = clock
        self._sleep = sleep

    @property
    def policy(self) -> PollPolicy:
        return self._policy

    async def wait(
        self,
        task: TaskRef,
        *,
        policy: PollPolicy | None = None,
        cancel: threading.Event | None = None,
    ) -> TaskRecord:
        run = _PollRun(_task_uid(task), policy or self._policy, self._clock, self._logger)
        while True:
            if cancel is not None and cancel.is_set():
                raise run.cancelled()
            done = run.observe(await self._fetch_once(run))
            if done is not None:
                return done
            await self._sleep(run.next_delay())

    async def _fetch_once(self, run: _PollRun) -> TaskRecord:
        remaining = run.remaining()
        if remaining is None:
            return await self._fetch(run.task_uid, timeout=None)
        try:
            return await asyncio.wait_for(self._fetch(run.task_uid, timeout=remaining), remaining)
        except (asyncio.TimeoutError, RequestTimeoutError) as exc:
            raise run.timed_out() from exc


__all__ = ["AsyncTaskPoller", "PollPolicy", "TaskPoller"]
