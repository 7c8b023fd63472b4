"""JSON handling for request and response bodies."""

from __future__ import annotations

import json
from typing import Any, Callable, Protocol, TypeVar

from .errors import DecodeError

T = TypeVar("T")


class JsonHandler(Protocol):
    def dumps(self, value: Any) -> str: ...

    def loads(self, data: bytes | str) -> Any: ...


class StdlibJsonHandler:
    def dumps(self, value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    def loads(self, data: bytes | str) -> Any:
        return json.loads(data)


DEFAULT_JSON_HANDLER = StdlibJsonHandler()


def decode(
    body: bytes,
    into: Callable[[Any], T],
    *,
    handler: JsonHandler = DEFAULT_JSON_HANDLER,
) -> T:
    """Parse ``body`` as JSON and hand the value to ``into``.

    ``into`` is the type descriptor: any callable turning the parsed value into
    the target type (``TaskRecord.from_payload``, ``dict``, ...). Parse failures
    and failures raised by ``into`` surface as :class:`DecodeError`.
    """
    if not body:
        raise DecodeError("Empty response body")
    try:
        parsed = handler.loads(body)
    except ValueError as exc:
        raise DecodeError(f"Invalid JSON response: {exc}") from exc
    try:
        return into(parsed)
    except DecodeError:
        raise
    except (TypeError, ValueError, KeyError) as exc:
        raise DecodeError(f"Cannot decode response: {exc}") from exc


def extract_error_message(body: str | None) -> str:
    if not body:
        return "Error occurred"
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return body.strip() or "Error occurred"

    if isinstance(parsed, dict) and "message" in parsed:
        message = parsed["message"]
        if isinstance(message, str):
            return message
        return str(message)
    return body.strip() or "Error occurred"


__all__ = ["DEFAULT_JSON_HANDLER", "JsonHandler", "StdlibJsonHandler", "decode", "extract_error_message"]
