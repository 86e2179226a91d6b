from __future__ import annotations

import asyncio
import inspect
import typing

DEFAULT_CHUNK_SIZE = 2**16


def is_readable(obj: object) -> bool:
    """
    Whether ``obj`` can be drained as a byte stream: anything with a
    ``read()`` method (file objects, :class:`io.BytesIO`,
    :class:`asyncio.StreamReader`) or an async iterable of chunks.
    Strings and byte buffers are not streams.
    """
    if isinstance(obj, (str, bytes, bytearray, memoryview)):
        return False
    return callable(getattr(obj, "read", None)) or hasattr(obj, "__aiter__")


def _to_bytes(chunk: typing.Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


async def iter_readable(
    readable: typing.Any, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> typing.AsyncIterator[bytes]:
    """
    Drain ``readable`` chunk by chunk. Async iterables are consumed as they
    are and coroutine ``read()`` methods are awaited. Plain ``read()`` methods
    run in a worker thread, one chunk per call, so a slow file never stalls
    the event loop. Text chunks are encoded as UTF-8 and empty chunks are
    skipped. The source is not closed; it belongs to whoever opened it.
    """
    if hasattr(readable, "__aiter__"):
        async for chunk in readable:
            if chunk:
                yield _to_bytes(chunk)
        return

    read = readable.read
    blocking = not inspect.iscoroutinefunction(read)
    while True:
        if blocking:
            chunk = await asyncio.to_thread(read, chunk_size)
        else:
            chunk = read(chunk_size)
        if inspect.isawaitable(chunk):
            chunk = await chunk
        if not chunk:
            break
        yield _to_bytes(chunk)
