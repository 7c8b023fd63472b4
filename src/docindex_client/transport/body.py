"""Request body variants and their wire encoding.

A request carries at most one body. :class:`Payload` is the selector handed
to ``RequestBuilder.body``; the first variant chosen wins, later calls are
ignored. Every variant encodes to an :class:`EncodedBody`: raw and binary
bodies become ``content`` (``bytes`` or an async iterator of chunks for
file and stream sources), multipart forms become ``files`` fields that
``httpx`` renders, boundary included.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, AsyncIterator, Callable, TypeVar, Union

import httpx

from ..errors import ConfigurationError

TEXT_PLAIN = "text/plain"
APPLICATION_JSON = "application/json"
TEXT_HTML = "text/html"
TEXT_XML = "text/xml"
APPLICATION_OCTET_STREAM = "application/octet-stream"
MULTIPART_FORM_DATA = "multipart/form-data"
APPLICATION_FORM_URLENCODED = "application/x-www-form-urlencoded"

DEFAULT_CHARSET = "utf-8"
CHUNK_SIZE = 64 * 1024

PathLike = Union[str, "os.PathLike[str]"]
BodyContent = Union[bytes, AsyncIterator[bytes]]
FileField = tuple[Union[str, None], Union[bytes, IO[bytes]], Union[str, None]]


@dataclass(frozen=True)
class EncodedBody:
    """What the transport hands to ``httpx``.

    ``closables`` are the caller streams and file handles behind the body;
    :meth:`aclose` releases them whether or not the body was ever sent.
    """

    content: BodyContent | None = None
    content_type: str | None = None
    content_length: int | None = None
    files: list[tuple[str, FileField]] | None = None
    closables: tuple[IO[bytes], ...] = ()

    def close(self) -> None:
        for handle in self.closables:
            if not handle.closed:
                handle.close()

    async def aclose(self) -> None:
        aclose = getattr(self.content, "aclose", None)
        if aclose is not None:
            await aclose()
        self.close()


def _is_default_charset(charset: str) -> bool:
    return charset.replace("_", "-").lower() in {"utf-8", "utf8"}


@dataclass(frozen=True)
class ByteSource:
    """Bytes held in memory, read from a file path, or pulled from a readable stream."""

    data: bytes | None = None
    path: Path | None = None
    stream: IO[bytes] | None = None

    @classmethod
    def of_bytes(cls, data: bytes) -> "ByteSource":
        return cls(data=bytes(data))

    @classmethod
    def of_path(cls, path: PathLike) -> "ByteSource":
        return cls(path=Path(path))

    @classmethod
    def of_stream(cls, stream: IO[bytes]) -> "ByteSource":
        return cls(stream=stream)

    @property
    def in_memory(self) -> bool:
        return self.data is not None

    @property
    def length(self) -> int | None:
        if self.data is not None:
            return len(self.data)
        if self.path is not None:
            return os.path.getsize(self.path)
        return None

    @property
    def filename(self) -> str | None:
        if self.path is not None:
            return self.path.name
        name = getattr(self.stream, "name", None)
        if isinstance(name, str) and name:
            return os.path.basename(name)
        return None

    def validate(self) -> None:
        if self.path is not None and not self.path.is_file():
            raise ConfigurationError(f"File not found: {self.path}", context={"path": str(self.path)})

    def open(self) -> bytes | IO[bytes]:
        if self.data is not None:
            return self.data
        if self.path is not None:
            return open(self.path, "rb")
        assert self.stream is not None
        return self.stream

    async def chunks(self, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        if self.data is not None:
            if self.data:
                yield self.data
            return
        if self.path is not None:
            handle = await asyncio.to_thread(open, self.path, "rb")
        else:
            handle = self.stream
        if handle is None:
            return
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()


class Body(ABC):
    def validate(self) -> None:
        """Reject a body that can never be sent, before any I/O happens."""

    @abstractmethod
    def encode(self, charset: str = DEFAULT_CHARSET) -> EncodedBody:
        """Produce the transmittable content and its content type."""


class Raw(Body):
    """Text content with a well-known media type."""

    def __init__(self) -> None:
        self._raw: str | None = None
        self._content_type = TEXT_PLAIN

    def text(self, text: str) -> "Raw":
        return self._set(text, TEXT_PLAIN)

    def json(self, text: str) -> "Raw":
        return self._set(text, APPLICATION_JSON)

    def html(self, text: str) -> "Raw":
        return self._set(text, TEXT_HTML)

    def xml(self, text: str) -> "Raw":
        return self._set(text, TEXT_XML)

    def _set(self, text: str, content_type: str) -> "Raw":
        if self._raw is None:
            self._raw = text
            self._content_type = content_type
        return self

    def encode(self, charset: str = DEFAULT_CHARSET) -> EncodedBody:
        data = (self._raw or "").encode(charset)
        content_type = self._content_type
        if not _is_default_charset(charset):
            content_type = f"{content_type}; charset={charset}"
        return EncodedBody(content=data, content_type=content_type, content_length=len(data))


class Binary(Body):
    def __init__(self) -> None:
        self._source: ByteSource | None = None
        self._content_type: str | None = None

    def content(self, data: bytes, content_type: str | None = None) -> "Binary":
        return self._set(ByteSource.of_bytes(data), content_type)

    def file(self, path: PathLike, content_type: str | None = None) -> "Binary":
        return self._set(ByteSource.of_path(path), content_type)

    def stream(self, readable: IO[bytes], content_type: str | None = None) -> "Binary":
        """Send a live stream chunk by chunk; the stream is closed once the request is over."""
        return self._set(ByteSource.of_stream(readable), content_type)

    def _set(self, source: ByteSource, content_type: str | None) -> "Binary":
        if self._source is None:
            self._source = source
            self._content_type = content_type
        return self

    def validate(self) -> None:
        if self._source is not None:
            self._source.validate()

    def encode(self, charset: str = DEFAULT_CHARSET) -> EncodedBody:
        content_type = self._content_type or APPLICATION_OCTET_STREAM
        source = self._source
        if source is None:
            return EncodedBody(content=b"", content_type=content_type, content_length=0)
        if source.in_memory:
            assert source.data is not None
            return EncodedBody(content=source.data, content_type=content_type, content_length=len(source.data))
        closables = (source.stream,) if source.stream is not None else ()
        return EncodedBody(
            content=source.chunks(),
            content_type=content_type,
            content_length=source.length,
            closables=closables,
        )


@dataclass(frozen=True)
class FormPart:
    name: str
    value: str | None = None
    source: ByteSource | None = None
    filename: str | None = None
    content_type: str | None = None

    def field(self) -> FileField:
        """The ``httpx`` files entry; text parts carry neither filename nor content type."""
        if self.source is None:
            return (None, (self.value or "").encode("utf-8"), None)
        filename = self.filename or self.source.filename or self.name
        return (filename, self.source.open(), self.content_type)


class FormData(Body):
    """multipart/form-data with text, in-memory, file and stream parts."""

    def __init__(self) -> None:
        self._parts: list[FormPart] = []
        self._boundary: str | None = None

    @property
    def parts(self) -> list[FormPart]:
        return list(self._parts)

    def with_boundary(self, boundary: str) -> "FormData":
        self._boundary = boundary
        return self

    def text(self, name: str, value: str) -> "FormData":
        self._parts.append(FormPart(name=name, value=value))
        return self

    def content(
        self,
        name: str,
        data: bytes,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> "FormData":
        self._parts.append(FormPart(name, source=ByteSource.of_bytes(data), filename=filename, content_type=content_type))
        return self

    def file(
        self,
        name: str,
        path: PathLike,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> "FormData":
        self._parts.append(FormPart(name, source=ByteSource.of_path(path), filename=filename, content_type=content_type))
        return self

    def stream(
        self,
        name: str,
        readable: IO[bytes],
        filename: str | None = None,
        content_type: str | None = None,
    ) -> "FormData":
        self._parts.append(
            FormPart(name, source=ByteSource.of_stream(readable), filename=filename, content_type=content_type)
        )
        return self

    def validate(self) -> None:
        for part in self._parts:
            if part.source is not None:
                part.source.validate()

    def encode(self, charset: str = DEFAULT_CHARSET) -> EncodedBody:
        # httpx picks the boundary up from this header; without one it generates its own
        content_type = f"{MULTIPART_FORM_DATA}; boundary={self._boundary}" if self._boundary else None
        if not self._parts:
            return EncodedBody(content=b"", content_type=content_type or MULTIPART_FORM_DATA, content_length=0)
        files: list[tuple[str, FileField]] = []
        closables: list[IO[bytes]] = []
        try:
            for part in self._parts:
                field = part.field()
                if not isinstance(field[1], bytes):
                    closables.append(field[1])
                files.append((part.name, field))
        except OSError:
            for handle in closables:
                handle.close()
            raise
        return EncodedBody(content_type=content_type, files=files, closables=tuple(closables))


class FormUrlEncoded(Body):
    def __init__(self) -> None:
        self._pairs: list[tuple[str, str]] = []

    def text(self, name: str, value: str) -> "FormUrlEncoded":
        self._pairs.append((name, value))
        return self

    def encode(self, charset: str = DEFAULT_CHARSET) -> EncodedBody:
        # QueryParams keeps repeated and interleaved names in insertion order
        data = str(httpx.QueryParams(self._pairs)).encode("ascii")
        return EncodedBody(content=data, content_type=APPLICATION_FORM_URLENCODED, content_length=len(data))


B = TypeVar("B", bound=Body)


class Payload:
    """Chooses the body variant of a request; only the first choice counts."""

    def __init__(self) -> None:
        self._body: Body | None = None

    @property
    def body(self) -> Body | None:
        return self._body

    def raw(self, configure: Callable[[Raw], Any]) -> "Payload":
        return self.type(Raw, configure)

    def binary(self, configure: Callable[[Binary], Any]) -> "Payload":
        return self.type(Binary, configure)

    def form_data(self, configure: Callable[[FormData], Any]) -> "Payload":
        return self.type(FormData, configure)

    def form_urlencoded(self, configure: Callable[[FormUrlEncoded], Any]) -> "Payload":
        return self.type(FormUrlEncoded, configure)

    def type(self, factory: Callable[[], B], configure: Callable[[B], Any]) -> "Payload":
        if self._body is None:
            built = factory()
            configure(built)
            self._body = built
        return self


__all__ = [
    "APPLICATION_FORM_URLENCODED",
    "APPLICATION_JSON",
    "APPLICATION_OCTET_STREAM",
    "Binary",
    "Body",
    "ByteSource",
    "EncodedBody",
    "FormData",
    "FormPart",
    "FormUrlEncoded",
    "MULTIPART_FORM_DATA",
    "Payload",
    "Raw",
    "TEXT_HTML",
    "TEXT_PLAIN",
    "TEXT_XML",
]
