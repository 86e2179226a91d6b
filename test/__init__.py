from __future__ import annotations

import asyncio
import typing

from netfuture.request import ErrorCallback, ResponseCallback
from netfuture.util.request import RequestOptions


class FakeResponse:
    """A scripted response handle: yields ``chunks``, then raises ``error``."""

    def __init__(
        self,
        status: int = 200,
        headers: typing.Mapping[str, str] | None = None,
        chunks: typing.Iterable[bytes] = (),
        error: BaseException | None = None,
    ) -> None:
        self.status = status
        self.headers = dict(headers or {})
        self.chunks = list(chunks)
        self.error = error
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def __aiter__(self) -> typing.AsyncIterator[bytes]:
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.close_calls += 1


class FakeRequest:
    """Records what the adapter does with a request handle."""

    def __init__(self, options: RequestOptions, on_response: ResponseCallback) -> None:
        self.options = options
        self.on_response = on_response
        self.error_callbacks: list[ErrorCallback] = []
        self.written: list[bytes] = []
        self.drain_calls = 0
        self.drain_gate: asyncio.Event | None = None
        self.end_calls = 0
        self.abort_calls = 0
        self._ended = asyncio.Event()

    @property
    def body(self) -> bytes:
        return b"".join(self.written)

    @property
    def headers(self) -> dict[str, typing.Any]:
        return self.options["headers"]

    def add_error_callback(self, callback: ErrorCallback) -> None:
        self.error_callbacks.append(callback)

    def write(self, data: bytes) -> None:
        assert not self.end_calls, "write() after end()"
        self.written.append(bytes(data))

    async def drain(self) -> None:
        self.drain_calls += 1
        if self.drain_gate is not None:
            await self.drain_gate.wait()
        await asyncio.sleep(0)

    def end(self) -> None:
        self.end_calls += 1
        self._ended.set()

    def abort(self) -> None:
        self.abort_calls += 1

    async def wait_ended(self) -> None:
        await asyncio.wait_for(self._ended.wait(), timeout=5)

    def respond(self, response: FakeResponse) -> FakeResponse:
        self.on_response(response)
        return response

    def fail(self, error: BaseException) -> None:
        for callback in list(self.error_callbacks):
            callback(error)


class FakeTransport:
    """A transport that starts :class:`FakeRequest` objects and keeps them."""

    def __init__(self) -> None:
        self.requests: list[FakeRequest] = []
        self.raise_on_open: BaseException | None = None

    def __call__(self, options: RequestOptions, on_response: ResponseCallback) -> FakeRequest:
        if self.raise_on_open is not None:
            raise self.raise_on_open
        request = FakeRequest(options, on_response)
        self.requests.append(request)
        return request

    @property
    def last(self) -> FakeRequest:
        return self.requests[-1]


class AsyncChunks:
    """An async iterable over fixed chunks, optionally failing at the end."""

    def __init__(self, *chunks: typing.Any, error: BaseException | None = None) -> None:
        self.chunks = chunks
        self.error = error

    async def __aiter__(self) -> typing.AsyncIterator[typing.Any]:
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error
