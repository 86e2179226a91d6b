from __future__ import annotations

import io

import pytest

from netfuture.fields import RequestField
from netfuture.filepost import (
    BOUNDARY_PREFIX,
    MultipartStream,
    build_multipart,
    choose_boundary,
)

from . import AsyncChunks

BOUNDARY = "!! test boundary !!"
BOUNDARY_BYTES = BOUNDARY.encode()


class TestChooseBoundary:
    def test_prefix_and_randomness(self) -> None:
        first, second = choose_boundary(), choose_boundary()
        assert first.startswith(BOUNDARY_PREFIX)
        assert len(first) == len(BOUNDARY_PREFIX) + 32
        assert first != second


class TestMultipartEncoding:
    @pytest.mark.parametrize(
        "parts",
        [
            [{"name": "k", "value": "v"}, {"name": "k2", "value": "v2"}],
            [{"name": "k", "value": b"v"}, {"name": "k2", "value": b"v2"}],
            [{"name": "k", "value": b"v"}, {"name": "k2", "value": "v2"}],
        ],
    )
    async def test_field_encoding(self, parts: list[dict[str, object]]) -> None:
        stream = build_multipart(parts, boundary=BOUNDARY)
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k"\r\n'
            b"\r\n"
            b"v\r\n"
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k2"\r\n'
            b"\r\n"
            b"v2\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert await stream.read() == expected
        assert stream.content_type == "multipart/form-data; boundary=" + BOUNDARY

    async def test_filename(self) -> None:
        stream = build_multipart(
            [{"name": "k", "value": {"file": io.BytesIO(b"v"), "filename": "somename"}}],
            boundary=BOUNDARY,
        )
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k"; filename="somename"\r\n'
            b"\r\n"
            b"v\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert await stream.read() == expected

    async def test_filename_only_sends_empty_part(self) -> None:
        stream = build_multipart(
            [{"name": "k", "value": {"filename": "empty.txt", "mime": "text/plain"}}],
            boundary=BOUNDARY,
        )
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k"; filename="empty.txt"\r\n'
            b"Content-Type: text/plain\r\n"
            b"\r\n"
            b"\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert await stream.read() == expected

    async def test_stream_without_filename(self) -> None:
        stream = build_multipart(
            [{"name": "blob", "value": {"file": AsyncChunks(b"ab", "c")}}],
            boundary=BOUNDARY,
        )
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="blob"\r\n'
            b"Content-Type: application/octet-stream\r\n"
            b"\r\n"
            b"abc\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert await stream.read() == expected

    async def test_file_read_in_chunks(self) -> None:
        stream = build_multipart(
            [{"name": "f", "value": {"file": io.BytesIO(b"0123456789"), "filename": "n"}}],
            boundary=BOUNDARY,
            chunk_size=4,
        )
        chunks = [chunk async for chunk in stream]
        assert [b"0123", b"4567", b"89"] == chunks[2:5]

    async def test_part_content_type_header_is_kept(self) -> None:
        stream = build_multipart(
            [
                {
                    "name": "doc",
                    "value": {"filename": "a.json", "headers": {"content-type": "application/json"}},
                }
            ],
            boundary=BOUNDARY,
        )
        assert b"Content-Type: application/json\r\n" in await stream.read()

    async def test_numbers(self) -> None:
        stream = build_multipart([{"name": "n", "value": 42}], boundary=BOUNDARY)
        assert b"\r\n\r\n42\r\n" in await stream.read()

    async def test_invalid_parts_dropped(self) -> None:
        stream = build_multipart(
            [{"name": "a", "value": "1"}, {"name": None, "value": "2"}, 17],
            boundary=BOUNDARY,
        )
        assert len(stream) == 1
        assert (await stream.read()).count(BOUNDARY_BYTES) == 2

    async def test_no_parts(self) -> None:
        stream = build_multipart([], boundary=BOUNDARY)
        assert len(stream) == 0
        assert await stream.read() == b"--" + BOUNDARY_BYTES + b"--\r\n"


class TestMultipartStream:
    async def test_must_be_finalized_before_reading(self) -> None:
        stream = MultipartStream(boundary=BOUNDARY)
        stream.append(RequestField("a", "b"))
        with pytest.raises(ValueError):
            await stream.read()

    def test_no_append_after_finalize(self) -> None:
        stream = MultipartStream()
        stream.finalize()
        assert stream.finalized
        with pytest.raises(ValueError):
            stream.append(RequestField("a", "b"))

    def test_random_boundary(self) -> None:
        stream = MultipartStream()
        assert stream.boundary.startswith(BOUNDARY_PREFIX)
        assert stream.content_type.endswith(stream.boundary)

    async def test_source_is_not_closed(self) -> None:
        fp = io.BytesIO(b"payload")
        await build_multipart([{"name": "f", "value": {"file": fp}}]).read()
        assert not fp.closed
