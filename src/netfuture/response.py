from __future__ import annotations

import codecs
import logging
import typing
from collections.abc import Mapping
from dataclasses import dataclass, fields

from ._collections import HTTPHeaderDict
from .exceptions import InvalidStatusLineError, StatusError

log = logging.getLogger(__name__)


class ResponseHandle(typing.Protocol):
    """What a transport hands to the response callback."""

    status: int
    headers: typing.Mapping[str, str]

    def __aiter__(self) -> typing.AsyncIterator[bytes]:
        ...

    def close(self) -> None:
        ...


ValidateStatus = typing.Callable[[int, typing.Mapping[str, str]], None]
ErrorPolicy = typing.Callable[[BaseException], bool]


def default_validate_status(status: int, headers: typing.Mapping[str, str]) -> None:
    """
    Accept 200 only. Anything else raises
    :class:`~netfuture.exceptions.StatusError` carrying the status and the
    ``location`` header, which is how callers learn where a redirect points.
    """
    if status != 200:
        raise StatusError(
            f"HTTP response status code: {status}",
            status_code=status,
            location=headers.get("location"),
            headers=headers,
        )


def is_benign_parse_error(error: BaseException) -> bool:
    """
    The default transport error policy: a status line parse failure raised
    after the connection had already consumed data is not worth failing the
    request over, a usable response may well have been delivered.
    """
    return isinstance(error, InvalidStatusLineError) and bool(error.bytes_parsed)


@dataclass
class ResponseConfig:
    """
    How a response is checked and handed back.

    :param validate_status:
        Called with the status and headers before the body is touched; raising
        fails the request. ``None`` accepts every status.
    :param binary:
        Return bytes instead of UTF-8 decoded text.
    :param stream:
        Return the open :class:`ResponseStream` instead of the buffered body.
        The caller then owns it and has to drain or close it.
    :param ignore_error:
        Decides which transport errors are logged and dropped instead of
        failing the request. ``None`` drops nothing.
    """

    validate_status: ValidateStatus | None = default_validate_status
    binary: bool = False
    stream: bool = False
    ignore_error: ErrorPolicy | None = is_benign_parse_error

    @classmethod
    def from_value(
        cls, config: ResponseConfig | typing.Mapping[str, typing.Any] | None
    ) -> ResponseConfig:
        """
        Accept a :class:`ResponseConfig`, a mapping of its field names, or
        ``None`` for the defaults. In a mapping a falsy ``validate_status``
        switches validation off.
        """
        if config is None:
            return cls()
        if isinstance(config, cls):
            return config
        if not isinstance(config, Mapping):
            raise TypeError(
                f"Expected a ResponseConfig or a mapping, got {type(config).__name__}"
            )

        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise TypeError(f"Unknown response config keys: {', '.join(sorted(unknown))}")

        kwargs = dict(config)
        for key in ("validate_status", "ignore_error"):
            if key in kwargs and not kwargs[key]:
                kwargs[key] = None
        return cls(**kwargs)


class TextResult(str):
    """A buffered text response body that also carries the response headers."""

    headers: HTTPHeaderDict
    status: int

    def __new__(cls, value: str, headers: HTTPHeaderDict, status: int) -> TextResult:
        result = super().__new__(cls, value)
        result.headers = headers
        result.status = status
        return result


class BytesResult(bytes):
    """A buffered binary response body that also carries the response headers."""

    headers: HTTPHeaderDict
    status: int

    def __new__(cls, value: bytes, headers: HTTPHeaderDict, status: int) -> BytesResult:
        result = super().__new__(cls, value)
        result.headers = headers
        result.status = status
        return result


class ResponseStream:
    """
    A response whose body has not been read yet.

    Iterating yields ``bytes`` chunks when ``binary`` is set and ``str``
    otherwise; text is decoded incrementally so a multi-byte character split
    across two network chunks comes out whole. Bytes that are not valid UTF-8
    decode to U+FFFD instead of failing the read. The underlying handle is
    closed once the body is exhausted, on error, or by :meth:`close`.
    """

    def __init__(self, handle: ResponseHandle, binary: bool = False) -> None:
        self._handle = handle
        self.binary = binary
        self.status = handle.status
        self.reason: str | None = getattr(handle, "reason", None)
        headers = handle.headers
        if isinstance(headers, HTTPHeaderDict):
            self.headers = headers
        else:
            self.headers = HTTPHeaderDict(headers)
        self._closed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status}]>"

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._handle.close()

    async def __aenter__(self) -> ResponseStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def stream(self) -> typing.AsyncIterator[typing.Union[str, bytes]]:
        if self._closed:
            return

        decoder = None if self.binary else codecs.getincrementaldecoder("utf-8")(errors="replace")
        clean_exit = False
        try:
            async for chunk in self._handle:
                if decoder is None:
                    yield bytes(chunk)
                    continue
                text = decoder.decode(chunk)
                if text:
                    yield text
            if decoder is not None:
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail
            clean_exit = True
        finally:
            if not clean_exit:
                log.debug("Response body of %r not read to the end, closing", self)
            self.close()

    def __aiter__(self) -> typing.AsyncIterator[typing.Union[str, bytes]]:
        return self.stream()

    async def read(self) -> typing.Union[str, bytes]:
        """Read the remaining body as one value."""
        chunks = [chunk async for chunk in self.stream()]
        if self.binary:
            return b"".join(typing.cast(typing.List[bytes], chunks))
        return "".join(typing.cast(typing.List[str], chunks))


async def consume_response(
    handle: ResponseHandle, config: ResponseConfig
) -> typing.Union[TextResult, BytesResult, ResponseStream]:
    """
    Validate ``handle`` and turn it into the value the request resolves to.

    A failing validator closes the handle before its error propagates. With
    ``config.stream`` the open :class:`ResponseStream` is returned and belongs
    to the caller from then on; otherwise the body is read to the end and
    returned as :class:`TextResult` or :class:`BytesResult`.
    """
    response = ResponseStream(handle, binary=config.binary)
    if config.validate_status is not None:
        try:
            config.validate_status(response.status, response.headers)
        except BaseException:
            response.close()
            raise

    if config.stream:
        return response

    chunks: list[typing.Union[str, bytes]] = []
    async for chunk in response.stream():
        chunks.append(chunk)

    body: typing.Union[TextResult, BytesResult]
    if config.binary:
        body = BytesResult(
            b"".join(typing.cast(typing.List[bytes], chunks)),
            headers=response.headers,
            status=response.status,
        )
    else:
        body = TextResult(
            "".join(typing.cast(typing.List[str], chunks)),
            headers=response.headers,
            status=response.status,
        )
    chunks.clear()
    return body
