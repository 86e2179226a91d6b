from __future__ import annotations

import io

import pytest

from netfuture.body import BodyStrategy, encode_body
from netfuture.exceptions import BodyNotAcceptedError
from netfuture.filepost import MultipartStream

from . import AsyncChunks


class TestEncodeBody:
    @pytest.mark.parametrize("body", ["", b"", None, {}, [], 0])
    def test_falsy_is_no_body(self, body: object) -> None:
        headers: dict[str, str] = {"content-type": "text/plain"}
        encoded = encode_body(body, headers)
        assert encoded.strategy is BodyStrategy.NONE
        assert headers == {"content-type": "text/plain"}

    def test_str(self) -> None:
        headers: dict[str, str] = {}
        encoded = encode_body("ü=1", headers)
        assert encoded.strategy is BodyStrategy.WRITE_ONCE
        assert encoded.data == "ü=1".encode()
        assert headers == {
            "content-length": "4",
            "content-type": "application/x-www-form-urlencoded",
        }

    def test_str_keeps_content_type(self) -> None:
        headers = {"content-type": "text/plain"}
        encode_body("hi", headers)
        assert headers["content-type"] == "text/plain"

    @pytest.mark.parametrize("body", [b"\x00\xff", bytearray(b"\x00\xff"), memoryview(b"\x00\xff")])
    def test_bytes_like(self, body: bytes) -> None:
        headers: dict[str, str] = {}
        encoded = encode_body(body, headers)
        assert encoded.strategy is BodyStrategy.WRITE_ONCE
        assert encoded.data == b"\x00\xff"
        assert headers == {"content-length": "2", "content-type": "application/octet-stream"}

    def test_mapping_as_form(self) -> None:
        headers = {"content-type": "text/html"}
        encoded = encode_body({"a": "1", "b": "x y"}, headers)
        assert encoded.data == b"a=1&b=x+y"
        assert headers["content-type"] == "application/x-www-form-urlencoded"
        assert headers["content-length"] == "9"

    @pytest.mark.parametrize(
        "content_type", ["application/json", "application/json; charset=utf-8", "APPLICATION/JSON"]
    )
    def test_mapping_as_json(self, content_type: str) -> None:
        headers = {"content-type": content_type}
        encoded = encode_body({"a": [1, None], "b": True}, headers)
        assert encoded.data == b'{"a":[1,null],"b":true}'
        assert headers["content-type"] == content_type
        assert headers["content-length"] == str(len(encoded.data or b""))

    def test_json_type_does_not_match_suffixes(self) -> None:
        headers = {"content-type": "application/json-patch+json"}
        encoded = encode_body({"a": 1}, headers)
        assert encoded.data == b"a=1"

    @pytest.mark.parametrize("source", [io.BytesIO(b"abc"), AsyncChunks(b"abc")])
    def test_readable(self, source: object) -> None:
        headers: dict[str, str] = {}
        encoded = encode_body(source, headers)
        assert encoded.strategy is BodyStrategy.PIPE_STREAM
        assert encoded.source is source
        assert headers == {"content-type": "application/octet-stream"}

    def test_readable_keeps_content_type(self) -> None:
        headers = {"content-type": "video/mp4"}
        encode_body(io.BytesIO(b""), headers)
        assert headers["content-type"] == "video/mp4"

    def test_parts(self) -> None:
        headers = {"content-type": "text/plain"}
        encoded = encode_body([{"name": "a", "value": "b"}], headers)
        assert encoded.strategy is BodyStrategy.PIPE_MULTIPART
        assert isinstance(encoded.source, MultipartStream)
        assert encoded.source.finalized
        assert headers["content-type"] == encoded.source.content_type
        assert "content-length" not in headers

    def test_no_valid_parts(self) -> None:
        headers: dict[str, str] = {}
        encoded = encode_body([{"name": "a"}], headers)
        assert encoded.strategy is BodyStrategy.NONE
        assert headers == {}

    def test_prebuilt_multipart_stream(self) -> None:
        stream = MultipartStream(boundary="xyz")
        headers: dict[str, str] = {}
        encoded = encode_body(stream, headers)
        assert encoded.strategy is BodyStrategy.PIPE_MULTIPART
        assert stream.finalized
        assert headers == {"content-type": "multipart/form-data; boundary=xyz"}

    @pytest.mark.parametrize("body", [1.5, 7, object(), {1, 2}])
    def test_unsupported(self, body: object) -> None:
        with pytest.raises(BodyNotAcceptedError):
            encode_body(body, {})
