"""
Request body classification.

:func:`encode_body` decides how a caller's body value goes over the wire and
fills in the ``content-type`` and ``content-length`` headers that follow from
that decision.
"""
from __future__ import annotations

import enum
import json as _json
import logging
import typing
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

from .exceptions import BodyNotAcceptedError
from .filepost import MultipartStream, build_multipart
from .util.stream import DEFAULT_CHUNK_SIZE, is_readable

log = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
FORM_URLENCODED = "application/x-www-form-urlencoded"
JSON = "application/json"


class BodyStrategy(enum.Enum):
    """How the encoded body is handed to the request handle."""

    #: End the request without a body.
    NONE = "none"
    #: Write ``data`` in one call, then end.
    WRITE_ONCE = "write-once"
    #: Copy ``source`` chunk by chunk, ending when it runs dry or fails.
    PIPE_STREAM = "pipe-stream"
    #: Copy the finalized multipart ``source``, ending after its trailer.
    PIPE_MULTIPART = "pipe-multipart"


@dataclass(frozen=True)
class EncodedBody:
    strategy: BodyStrategy
    data: bytes | None = None
    source: typing.Any = None


_NO_BODY = EncodedBody(BodyStrategy.NONE)


def _media_type(value: typing.Any) -> str:
    return str(value).split(";", 1)[0].strip().lower()


def encode_body(
    body: typing.Any,
    headers: dict[str, typing.Any],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> EncodedBody:
    """
    Classify ``body`` and update ``headers`` (lower-cased names) in place.

    The first matching rule wins:

    ============================  ================================================
    body                          treatment
    ============================  ================================================
    falsy                         no body, headers untouched
    ``list`` / ``tuple``          multipart parts; invalid parts are dropped and
                                  if none are left there is no body
    readable stream               piped; ``content-type`` defaults to
                                  ``application/octet-stream``
    ``bytes``-like                written once with ``content-length``;
                                  ``content-type`` defaults to
                                  ``application/octet-stream``
    mapping                       JSON when ``content-type`` is
                                  ``application/json``, otherwise URL-encoded
                                  with the stale ``content-type`` removed; then
                                  handled as a string
    ``str``                       UTF-8, written once with ``content-length``;
                                  ``content-type`` defaults to
                                  ``application/x-www-form-urlencoded``
    ============================  ================================================

    Anything else raises :class:`~netfuture.exceptions.BodyNotAcceptedError`.
    """
    if isinstance(body, MultipartStream):
        if not body.finalized:
            body.finalize()
        headers["content-type"] = body.content_type
        return EncodedBody(BodyStrategy.PIPE_MULTIPART, source=body)

    if not body:
        return _NO_BODY

    if isinstance(body, (list, tuple)):
        stream = build_multipart(body, chunk_size=chunk_size)
        if not len(stream):
            log.debug("No valid multipart parts among %d, sending no body", len(body))
            return _NO_BODY
        headers["content-type"] = stream.content_type
        return EncodedBody(BodyStrategy.PIPE_MULTIPART, source=stream)

    if is_readable(body):
        headers.setdefault("content-type", OCTET_STREAM)
        return EncodedBody(BodyStrategy.PIPE_STREAM, source=body)

    if isinstance(body, (bytes, bytearray, memoryview)):
        data = bytes(body)
        headers["content-length"] = str(len(data))
        headers.setdefault("content-type", OCTET_STREAM)
        return EncodedBody(BodyStrategy.WRITE_ONCE, data=data)

    if isinstance(body, Mapping):
        if _media_type(headers.get("content-type", "")) == JSON:
            body = _json.dumps(body, separators=(",", ":"))
        else:
            body = urlencode(body, doseq=True)
            headers.pop("content-type", None)

    if isinstance(body, str):
        data = body.encode("utf-8")
        headers["content-length"] = str(len(data))
        headers.setdefault("content-type", FORM_URLENCODED)
        return EncodedBody(BodyStrategy.WRITE_ONCE, data=data)

    raise BodyNotAcceptedError(f"Unsupported request body type: {type(body).__name__}")
