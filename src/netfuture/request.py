"""
The future-based request adapter.

:func:`promisify_request` takes a callback-style transport, a callable that
accepts request options plus a response callback and returns a writable
request handle, and returns a function that issues a request and hands back
an :class:`asyncio.Future` of the response.
"""
from __future__ import annotations

import asyncio
import logging
import typing

from .body import BodyStrategy, EncodedBody, encode_body
from .filepost import MultipartStream
from .response import (
    BytesResult,
    ResponseConfig,
    ResponseHandle,
    ResponseStream,
    TextResult,
    consume_response,
)
from .util.request import RequestOptions, normalize_options
from .util.stream import DEFAULT_CHUNK_SIZE, iter_readable

log = logging.getLogger(__name__)

ErrorCallback = typing.Callable[[BaseException], None]
ResponseCallback = typing.Callable[[ResponseHandle], None]
Result = typing.Union[TextResult, BytesResult, ResponseStream]


class RequestHandle(typing.Protocol):
    """What a transport returns for a request it has started."""

    def add_error_callback(self, callback: ErrorCallback) -> None:
        ...

    def write(self, data: bytes) -> None:
        ...

    async def drain(self) -> None:
        """Wait until the transport is ready for more body data."""
        ...

    def end(self) -> None:
        ...

    def abort(self) -> None:
        ...


Transport = typing.Callable[[RequestOptions, ResponseCallback], RequestHandle]


class RequestFunction(typing.Protocol):
    def __call__(
        self,
        url_or_options: str | typing.Mapping[str, typing.Any],
        body: typing.Any = "",
        config: ResponseConfig | typing.Mapping[str, typing.Any] | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> asyncio.Future[Result]:
        ...


class PendingRequest:
    """
    One in-flight request: its future, the transport's request and response
    handles, and the task feeding the request body.

    Every outcome goes through :meth:`_resolve` or :meth:`_fail`, and only the
    first one settles the future. A failed or cancelled future closes the
    response handle (unless it was handed to the caller), stops the body task
    and aborts the request handle.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.future: asyncio.Future[Result] = loop.create_future()
        self.config = ResponseConfig()
        self.chunk_size = DEFAULT_CHUNK_SIZE
        self._loop = loop
        self._request: RequestHandle | None = None
        self._response: ResponseHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self.future.add_done_callback(self._on_settled)

    def start(
        self,
        transport: Transport,
        url_or_options: str | typing.Mapping[str, typing.Any],
        body: typing.Any,
        config: ResponseConfig | typing.Mapping[str, typing.Any] | None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.chunk_size = chunk_size
        try:
            self.config = ResponseConfig.from_value(config)
            options = normalize_options(url_or_options)
            encoded = encode_body(body, options["headers"], chunk_size)
            log.debug(
                "Starting %s request to %s with %s body",
                options.get("method", "GET"),
                options.get("host"),
                encoded.strategy.value,
            )
            self._request = transport(options, self._on_response)
            # Listen before writing so an early failure is not lost.
            self._request.add_error_callback(self._on_error)
            self._send(encoded)
        except Exception as e:
            self._fail(e)

    def _send(self, encoded: EncodedBody) -> None:
        assert self._request is not None
        strategy = encoded.strategy
        if strategy is BodyStrategy.NONE:
            self._request.end()
        elif strategy is BodyStrategy.WRITE_ONCE:
            assert encoded.data is not None
            self._request.write(encoded.data)
            self._request.end()
        elif strategy is BodyStrategy.PIPE_STREAM:
            self._spawn(self._pipe_stream(encoded.source))
        else:
            self._spawn(self._pipe_multipart(encoded.source))

    async def _pipe_stream(self, source: typing.Any) -> None:
        assert self._request is not None
        try:
            async for chunk in iter_readable(source, self.chunk_size):
                self._request.write(chunk)
                await self._request.drain()
        except Exception as e:
            log.warning("Request body stream failed, ending the request: %r", e)
        self._request.end()

    async def _pipe_multipart(self, stream: MultipartStream) -> None:
        assert self._request is not None
        async for chunk in stream:
            self._request.write(chunk)
            await self._request.drain()
        # Only end once the closing boundary has been written.
        self._request.end()

    async def _receive(self, handle: ResponseHandle) -> None:
        result = await consume_response(handle, self.config)
        self._resolve(result)

    def _spawn(self, coro: typing.Coroutine[typing.Any, typing.Any, None]) -> None:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._fail(error)

    def _on_response(self, handle: ResponseHandle) -> None:
        if self.future.done():
            log.debug("Response arrived after the request settled, closing it")
            handle.close()
            return
        self._response = handle
        self._spawn(self._receive(handle))

    def _on_error(self, error: BaseException) -> None:
        policy = self.config.ignore_error
        if policy is not None and policy(error):
            log.warning("Ignoring transport error: %r", error)
            return
        self._fail(error)

    def _resolve(self, result: Result) -> None:
        if self.future.done():
            if isinstance(result, ResponseStream):
                result.close()
            return
        if isinstance(result, ResponseStream):
            # The caller owns the open response from here on.
            self._response = None
        self.future.set_result(result)

    def _fail(self, error: BaseException) -> None:
        if self.future.done():
            log.debug("Request already settled, dropping error %r", error)
            return
        self.future.set_exception(error)

    def _on_settled(self, future: asyncio.Future[Result]) -> None:
        if future.cancelled() or future.exception() is not None:
            self._release()

    def _release(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._response is not None:
            response, self._response = self._response, None
            response.close()
        if self._request is not None:
            self._request.abort()


def promisify_request(transport: Transport) -> RequestFunction:
    """
    Wrap a callback-style ``transport`` into a function returning futures.

    ``transport(options, on_response)`` must start a request described by the
    ``options`` mapping (``scheme``, ``host``, ``port``, ``path``, ``method``,
    lower-cased ``headers``), return a :class:`RequestHandle`, and later call
    ``on_response`` with a :class:`~netfuture.response.ResponseHandle`, all on
    the event loop thread. Streamed bodies are written one chunk at a time,
    awaiting the handle's ``drain()`` before the next chunk is read.

    The returned function has the signature
    ``request(url_or_options, body="", config=None, *, chunk_size=65536)``:

    :param url_or_options:
        A URL string or an options mapping.
    :param body:
        ``str``, ``bytes``, a mapping (form or JSON), a readable stream, or a
        list of multipart parts. See :func:`~netfuture.body.encode_body`.
    :param config:
        A :class:`~netfuture.response.ResponseConfig` or a mapping with its
        field names.
    :param chunk_size:
        How many bytes to read from a stream body, or from a multipart file
        source, per write.

    It must be called with an event loop running. Beyond that it does not
    raise: problems while setting the request up fail the returned future the
    same way transport errors do.

    .. code-block:: python

        request = promisify_request(open_request)
        text = await request("http://example.com/")
        print(text.headers["content-type"])
    """

    def request(
        url_or_options: str | typing.Mapping[str, typing.Any],
        body: typing.Any = "",
        config: ResponseConfig | typing.Mapping[str, typing.Any] | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> asyncio.Future[Result]:
        pending = PendingRequest(asyncio.get_running_loop())
        pending.start(transport, url_or_options, body, config, chunk_size)
        return pending.future

    return request
