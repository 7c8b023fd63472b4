"""Custom exceptions raised by the document index Python client."""

from __future__ import annotations

from typing import Any


class DocIndexError(Exception):
    """Base error for all client failures."""

    def __init__(self, message: str, *, context: Any | None = None) -> None:
        super().__init__(message)
        self.context = context


class ConfigurationError(DocIndexError):
    """Raised before any I/O when a request cannot be built (bad method, bad URL)."""


class ConnectionError(DocIndexError):
    """Raised when the client cannot reach the server."""


class RequestTimeoutError(ConnectionError):
    """Raised when connecting or reading exceeds the configured timeout."""


class ClientClosedError(DocIndexError):
    """Raised for any call issued after the transport has been closed."""


class CallbackError(DocIndexError):
    """Raised when a user supplied callback fails; ``origin`` is the callback."""

    def __init__(self, message: str, *, origin: Any, context: Any | None = None) -> None:
        super().__init__(message, context=context)
        self.origin = origin


class InterceptorError(CallbackError):
    """Raised when a request interceptor fails."""


class ResponseFilterError(CallbackError):
    """Raised when a response filter fails or returns something other than bytes."""


class ResultHookError(CallbackError):
    """Raised when a per-request result hook fails."""


class DecodeError(DocIndexError):
    """Raised when a response body cannot be decoded."""


class UnknownTaskStatusError(DecodeError):
    """Raised when the service reports a task status the client does not know."""


class NoResultError(DocIndexError):
    """Raised by the blocking facade when the call completed without a value."""


class PollTimeoutError(DocIndexError):
    """Raised when a task does not reach a terminal state before the deadline."""

    def __init__(
        self,
        message: str,
        *,
        task_uid: int | str,
        last_status: Any | None,
        elapsed: float,
    ) -> None:
        super().__init__(message, context={"task_uid": task_uid, "last_status": last_status})
        self.task_uid = task_uid
        self.last_status = last_status
        self.elapsed = elapsed


class PollCancelledError(DocIndexError):
    """Raised when polling is stopped through its cancel event."""


class HttpFailureError(DocIndexError):
    """Raised when the service answers with a non 2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        method: str | None = None,
        url: str | None = None,
        context: Any | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.status = status
        self.method = method
        self.url = url

    def __str__(self) -> str:
        return f"failure with status code: [{self.status}] [{self.method}] {self.url}, {self.args[0]}"


class BadRequestError(HttpFailureError):
    """Raised when the submitted request is invalid."""


class AuthenticationError(HttpFailureError):
    """Raised when the API key is missing or rejected."""


class AuthorizationError(HttpFailureError):
    """Raised when the server denies access to a resource."""


class NotFoundError(HttpFailureError):
    """Raised when the target resource does not exist."""


class ServerError(HttpFailureError):
    """Raised for 5xx style failures."""


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "BadRequestError",
    "CallbackError",
    "ClientClosedError",
    "ConfigurationError",
    "ConnectionError",
    "DecodeError",
    "DocIndexError",
    "HttpFailureError",
    "InterceptorError",
    "NoResultError",
    "NotFoundError",
    "PollCancelledError",
    "PollTimeoutError",
    "RequestTimeoutError",
    "ResponseFilterError",
    "ResultHookError",
    "ServerError",
    "UnknownTaskStatusError",
]
