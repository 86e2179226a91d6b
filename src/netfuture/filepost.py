from __future__ import annotations

import binascii
import logging
import os
import typing

from .fields import RequestField, iter_valid_parts
from .util.stream import DEFAULT_CHUNK_SIZE, iter_readable

log = logging.getLogger(__name__)

#: Fixed head of every generated boundary, so a boundary never starts with
#: something user content is likely to contain.
BOUNDARY_PREFIX = "----NetfutureFormBoundary"


def choose_boundary() -> str:
    """
    Our embarrassingly-simple replacement for mimetools.choose_boundary.
    """
    return BOUNDARY_PREFIX + binascii.hexlify(os.urandom(16)).decode()


class MultipartStream:
    """
    A ``multipart/form-data`` body produced while it is being sent.

    Fields are queued with :meth:`append`; :meth:`finalize` queues the closing
    boundary. Iterating the finalized stream yields the encoded message chunk
    by chunk, reading file parts only as far as the consumer has got, so file
    contents are never held in memory as a whole.

    :param boundary:
        If not specified, then a random boundary will be generated using
        :func:`netfuture.filepost.choose_boundary`.
    """

    def __init__(
        self, boundary: str | None = None, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> None:
        self.boundary = boundary or choose_boundary()
        self.chunk_size = chunk_size
        self._fields: list[RequestField] = []
        self._finalized = False

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __len__(self) -> int:
        return len(self._fields)

    def append(self, field: RequestField) -> None:
        if self._finalized:
            raise ValueError("Cannot append to a finalized multipart stream")
        self._fields.append(field)

    def finalize(self) -> None:
        """Queue the closing boundary. Nothing can be appended afterwards."""
        self._finalized = True

    async def _iter_field(self, field: RequestField) -> typing.AsyncIterator[bytes]:
        yield f"--{self.boundary}\r\n".encode("latin-1")
        yield field.render_headers().encode("utf-8")

        data = field.data
        if isinstance(data, str):
            yield data.encode("utf-8")
        elif isinstance(data, (bytes, bytearray, memoryview)):
            if data:
                yield bytes(data)
        elif data is not None:
            async for chunk in iter_readable(data, self.chunk_size):
                yield chunk

        yield b"\r\n"

    async def __aiter__(self) -> typing.AsyncIterator[bytes]:
        if not self._finalized:
            raise ValueError("Multipart stream must be finalized before it is read")

        for field in self._fields:
            log.debug("Encoding multipart field %r", field.name)
            async for chunk in self._iter_field(field):
                yield chunk

        yield f"--{self.boundary}--\r\n".encode("latin-1")

    async def read(self) -> bytes:
        """Drain the whole message. Meant for small bodies and tests."""
        return b"".join([chunk async for chunk in self])


def build_multipart(
    parts: typing.Iterable[typing.Any],
    boundary: str | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> MultipartStream:
    """
    Encode ``parts`` as a finalized :class:`MultipartStream`.

    Each item is a :class:`~netfuture.fields.Part` or a mapping like
    ``{"name": "field", "value": "text"}`` or
    ``{"name": "upload", "value": {"file": fp, "filename": "a.txt"}}``.
    Items that cannot be sent are dropped without error; check
    ``len(stream)`` to learn how many were kept.
    """
    stream = MultipartStream(boundary=boundary, chunk_size=chunk_size)
    for part in iter_valid_parts(parts):
        stream.append(RequestField.from_part(part))
    stream.finalize()
    return stream
