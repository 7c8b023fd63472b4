import asyncio
import io

import httpx
import pytest

from docindex_client.errors import ConfigurationError
from docindex_client.transport.body import (
    APPLICATION_FORM_URLENCODED,
    APPLICATION_JSON,
    APPLICATION_OCTET_STREAM,
    MULTIPART_FORM_DATA,
    TEXT_PLAIN,
    TEXT_XML,
    Binary,
    EncodedBody,
    FormData,
    FormUrlEncoded,
    Payload,
    Raw,
)


def collect(content) -> bytes:
    if isinstance(content, bytes):
        return content

    async def gather() -> bytes:
        return b"".join([chunk async for chunk in content])

    return asyncio.run(gather())


def split_parts(body: bytes, boundary: str) -> list[tuple[bytes, bytes]]:
    segments = body.split(b"--" + boundary.encode("ascii"))
    assert segments[0] == b""
    assert segments[-1] == b"--\r\n"
    parts = []
    for segment in segments[1:-1]:
        head, _, data = segment[2:].partition(b"\r\n\r\n")
        assert data.endswith(b"\r\n")
        parts.append((head, data[:-2]))
    return parts


def test_raw_variants_set_media_type_and_pass_text_through() -> None:
    encoded = Raw().json('{"foo":"bär"}').encode()
    assert encoded.content == '{"foo":"bär"}'.encode("utf-8")
    assert encoded.content_type == APPLICATION_JSON
    assert encoded.content_length == len(encoded.content)
    assert Raw().xml("<a/>").encode().content_type == TEXT_XML
    assert Raw().text("hi").encode().content_type == TEXT_PLAIN


def test_raw_keeps_first_value() -> None:
    encoded = Raw().text("first").json("{}").encode()
    assert encoded.content == b"first"
    assert encoded.content_type == TEXT_PLAIN


def test_binary_defaults_to_octet_stream() -> None:
    encoded = Binary().content(b"\x00\x01\x02").encode()
    assert encoded.content == b"\x00\x01\x02"
    assert encoded.content_type == APPLICATION_OCTET_STREAM
    assert Binary().content(b"x", "image/png").encode().content_type == "image/png"


def test_binary_file_is_streamed_with_known_length(tmp_path) -> None:
    path = tmp_path / "payload.bin"
    data = bytes(range(256)) * 1024
    path.write_bytes(data)
    encoded = Binary().file(path).encode()
    assert not isinstance(encoded.content, bytes)
    assert encoded.content_length == len(data)
    assert collect(encoded.content) == data


def test_binary_stream_is_closed_after_consumption() -> None:
    stream = io.BytesIO(b"hello world")
    encoded = Binary().stream(stream, "text/plain").encode()
    assert encoded.content_length is None
    assert collect(encoded.content) == b"hello world"
    assert stream.closed


def render(encoded: EncodedBody) -> tuple[httpx.Headers, bytes]:
    """Let httpx serialize the body exactly as the transport would send it."""
    headers = {"Content-Type": encoded.content_type} if encoded.content_type else {}
    if encoded.files is None:
        request = httpx.Request("POST", "http://localhost/", headers=headers, content=collect(encoded.content))
    else:
        request = httpx.Request("POST", "http://localhost/", headers=headers, files=encoded.files)
    try:
        return request.headers, request.read()
    finally:
        encoded.close()


def test_form_data_encodes_each_part() -> None:
    form = (
        FormData()
        .with_boundary("b0undary")
        .text("title", "Carol")
        .content("poster", b"\x89PNG", filename="poster.png", content_type="image/png")
        .content("raw", b"abc")
    )
    encoded = form.encode()
    assert encoded.content is None
    assert [name for name, _ in encoded.files] == ["title", "poster", "raw"]
    headers, body = render(encoded)
    assert headers["content-type"] == "multipart/form-data; boundary=b0undary"
    assert headers["content-length"] == str(len(body))
    parts = split_parts(body, "b0undary")
    assert parts[0] == (b'Content-Disposition: form-data; name="title"', b"Carol")
    assert parts[1] == (
        b'Content-Disposition: form-data; name="poster"; filename="poster.png"\r\nContent-Type: image/png',
        b"\x89PNG",
    )
    assert parts[2] == (
        b'Content-Disposition: form-data; name="raw"; filename="raw"\r\nContent-Type: application/octet-stream',
        b"abc",
    )


def test_form_data_infers_filename_from_path(tmp_path) -> None:
    path = tmp_path / "movies.json"
    path.write_bytes(b"[]")
    encoded = FormData().with_boundary("xyz").file("docs", path, content_type=APPLICATION_JSON).encode()
    handle = encoded.closables[0]
    _, body = render(encoded)
    (head, data), = split_parts(body, "xyz")
    assert b'filename="movies.json"' in head
    assert b"Content-Type: application/json" in head
    assert data == b"[]"
    assert handle.closed


def test_form_data_stream_part_is_closed_with_body() -> None:
    stream = io.BytesIO(b'{"id":1}\n')
    encoded = FormData().with_boundary("s").stream("docs", stream, filename="docs.ndjson").encode()
    assert encoded.closables == (stream,)
    _, body = render(encoded)
    assert split_parts(body, "s")[0][1] == b'{"id":1}\n'
    assert stream.closed


def test_form_data_generates_boundary() -> None:
    encoded = FormData().text("a", "b").encode()
    assert encoded.content_type is None
    headers, body = render(encoded)
    boundary = headers["content-type"].split("boundary=")[1]
    assert len(boundary) >= 16
    assert split_parts(body, boundary)[0][1] == b"b"


def test_form_data_releases_opened_parts_when_a_file_is_missing(tmp_path) -> None:
    stream = io.BytesIO(b"x")
    form = FormData().stream("first", stream).file("second", tmp_path / "gone.bin")
    with pytest.raises(ConfigurationError, match="File not found"):
        form.validate()
    with pytest.raises(FileNotFoundError):
        form.encode()
    assert stream.closed


def test_missing_binary_file_fails_validation(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        Binary().file(tmp_path / "gone.bin").validate()
    Binary().content(b"fine").validate()


def test_unsent_stream_body_is_closed_by_aclose() -> None:
    stream = io.BytesIO(b"never sent")
    encoded = Binary().stream(stream).encode()
    asyncio.run(encoded.aclose())
    assert stream.closed


def test_raw_honours_charset() -> None:
    encoded = Raw().text("café").encode("latin-1")
    assert encoded.content == b"caf\xe9"
    assert encoded.content_type == "text/plain; charset=latin-1"
    assert Raw().text("café").encode("UTF-8").content_type == TEXT_PLAIN


def test_empty_forms_encode_to_empty_body() -> None:
    empty = FormData().encode()
    assert empty.content == b""
    assert empty.content_type == MULTIPART_FORM_DATA
    encoded = FormUrlEncoded().encode()
    assert encoded.content == b""
    assert encoded.content_type == APPLICATION_FORM_URLENCODED


def test_form_urlencoded_percent_encodes_pairs_in_order() -> None:
    encoded = FormUrlEncoded().text("q", "a b&c").text("lang", "ü").text("q", "2").encode()
    assert encoded.content == b"q=a+b%26c&lang=%C3%BC&q=2"


def test_payload_keeps_first_body() -> None:
    payload = Payload()
    payload.raw(lambda raw: raw.text("one")).binary(lambda binary: binary.content(b"two"))
    assert isinstance(payload.body, Raw)
