"""Task models and shared typing helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar

from .errors import DecodeError, UnknownTaskStatusError

T = TypeVar("T")


class TaskStatus(str, Enum):
    ENQUEUED = "enqueued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        if isinstance(value, TaskStatus):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnknownTaskStatusError(f"Unknown task status {value!r}", context={"status": value})

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def rank(self) -> int:
        if self is TaskStatus.ENQUEUED:
            return 0
        if self is TaskStatus.PROCESSING:
            return 1
        return 2

    def __str__(self) -> str:
        return self.value


_TERMINAL = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELED})


def _require_mapping(payload: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise DecodeError(f"Expected a JSON object for {what}, got {type(payload).__name__}")
    return payload


def _require_uid(payload: Mapping[str, Any], *keys: str) -> int:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    raise DecodeError(f"Task payload is missing {' / '.join(keys)}", context=dict(payload))


@dataclass(frozen=True)
class TaskHandle:
    """What a mutating call returns: the task uid and its status at enqueue time."""

    task_uid: int
    status: TaskStatus
    index_uid: str | None = None
    type: str | None = None
    enqueued_at: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TaskHandle":
        data = _require_mapping(payload, "task handle")
        return cls(
            task_uid=_require_uid(data, "taskUid", "uid"),
            status=TaskStatus.parse(data.get("status")),
            index_uid=data.get("indexUid"),
            type=data.get("type"),
            enqueued_at=data.get("enqueuedAt"),
        )


@dataclass(frozen=True)
class TaskRecord:
    uid: int
    status: TaskStatus
    index_uid: str | None = None
    type: str | None = None
    enqueued_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    duration: str | None = None
    canceled_by: int | None = None
    error: Mapping[str, Any] | None = None
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "TaskRecord":
        data = _require_mapping(payload, "task")
        return cls(
            uid=_require_uid(data, "uid", "taskUid"),
            status=TaskStatus.parse(data.get("status")),
            index_uid=data.get("indexUid"),
            type=data.get("type"),
            enqueued_at=data.get("enqueuedAt"),
            started_at=data.get("startedAt"),
            finished_at=data.get("finishedAt"),
            duration=data.get("duration"),
            canceled_by=data.get("canceledBy"),
            error=data.get("error"),
            details=dict(data.get("details") or {}),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_successful(self) -> bool:
        return self.status is TaskStatus.SUCCEEDED

    @property
    def error_message(self) -> str | None:
        if not self.error:
            return None
        message = self.error.get("message")
        return str(message) if message is not None else None


@dataclass
class ExecuteResult(Generic[T]):
    ok: bool
    data: T | None = None
    error: Exception | None = None


__all__ = ["ExecuteResult", "TaskHandle", "TaskRecord", "TaskStatus"]
