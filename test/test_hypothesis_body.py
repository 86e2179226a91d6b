"""
Hypothesis property-based tests for body encoding and multipart fields.
"""
from __future__ import annotations

import asyncio
import string

from hypothesis import given, settings, strategies as st

from netfuture.body import BodyStrategy, encode_body
from netfuture.fields import format_field_name, format_header_param_html5
from netfuture.filepost import build_multipart
from netfuture.util.request import normalize_options

# Strategy for field names
field_names = st.text(min_size=1, max_size=50)

# Strategy for scalar part values
part_values = st.one_of(
    st.text(max_size=200),
    st.binary(max_size=200),
    st.integers(),
    st.booleans(),
)

header_names = st.text(
    alphabet=string.ascii_letters + string.digits + "-",
    min_size=1,
    max_size=30,
)


@settings(max_examples=500, deadline=None)
@given(body=st.text(min_size=1))
def test_text_content_length_counts_bytes(body: str) -> None:
    headers: dict[str, str] = {}
    encoded = encode_body(body, headers)

    assert encoded.strategy is BodyStrategy.WRITE_ONCE
    assert encoded.data == body.encode("utf-8")
    assert int(headers["content-length"]) == len(body.encode("utf-8"))


@settings(max_examples=200, deadline=None)
@given(form=st.dictionaries(st.text(min_size=1, max_size=20), st.text(max_size=50), min_size=1))
def test_form_body_is_ascii(form: dict[str, str]) -> None:
    headers: dict[str, str] = {}
    encoded = encode_body(form, headers)

    assert encoded.data is not None
    encoded.data.decode("ascii")
    assert headers["content-type"] == "application/x-www-form-urlencoded"


@settings(max_examples=200, deadline=None)
@given(parts=st.lists(st.tuples(field_names, part_values), max_size=8))
def test_multipart_framing(parts: list[tuple[str, object]]) -> None:
    stream = build_multipart(
        [{"name": name, "value": value} for name, value in parts], boundary="b0undary"
    )
    body = asyncio.run(stream.read())

    assert len(stream) == len(parts)
    assert body.endswith(b"--b0undary--\r\n")
    assert body.count(b"\r\n--b0undary") + body.startswith(b"--b0undary") == len(parts) + 1
    for name, _ in parts:
        assert format_field_name(name).encode() in body


@settings(max_examples=500, deadline=None)
@given(value=st.text(max_size=100))
def test_html5_param_has_no_raw_quotes_or_newlines(value: str) -> None:
    result = format_header_param_html5("filename", value)

    assert result.startswith('filename="')
    assert result.endswith('"')
    inner = result[len('filename="') : -1]
    assert '"' not in inner
    assert "\r" not in inner
    assert "\n" not in inner


@settings(max_examples=500, deadline=None)
@given(name=st.text(max_size=50))
def test_field_name_is_ascii_and_unquoted(name: str) -> None:
    result = format_field_name(name)
    inner = result[len('name="') : -1]

    inner.encode("ascii")
    assert '"' not in inner
    assert "\\" not in inner


@settings(max_examples=200, deadline=None)
@given(headers=st.dictionaries(header_names, st.text(max_size=20), max_size=10))
def test_normalized_header_names_are_lower_case(headers: dict[str, str]) -> None:
    options = normalize_options({"host": "example.com", "headers": headers})

    assert all(name == name.lower() for name in options["headers"])
    assert {name.lower() for name in headers} == set(options["headers"])
