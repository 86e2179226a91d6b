"""
A callback-style HTTP/1.1 client built on asyncio streams and h11.

:func:`open_request` is the default transport for
:func:`~netfuture.request.promisify_request`. It starts a request on its own
connection and returns a handle the request body is written to; once the
response head arrives the response callback receives a
:class:`HTTPResponseHandle` whose body is read by async iteration.

Unlike in http.client, the objects here know very little about the semantics
of HTTP. They serialize and parse messages with h11 and manage the socket.
"""
from __future__ import annotations

import asyncio
import logging
import typing

import h11

from ._collections import HTTPHeaderDict
from ._version import __version__
from .exceptions import (
    InvalidStatusLineError,
    LocationValueError,
    NewConnectionError,
    ProtocolError,
)
from .util.request import RequestOptions, make_headers
from .util.url import DEFAULT_PORTS

log = logging.getLogger(__name__)

BUFSIZE = 65536


class _EndOfBody:
    pass


_EOF = _EndOfBody()


def _get_default_user_agent() -> str:
    return f"python-netfuture/{__version__}"


def _stringify_headers(
    headers: typing.Mapping[str, typing.Any]
) -> typing.Iterator[tuple[bytes, bytes]]:
    """
    A generator that transforms headers so they're suitable for sending by h11.
    A list value is sent as repeated header lines.
    """
    for name, value in headers.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, bytes):
                yield name.encode("ascii"), item
            else:
                yield name.encode("ascii"), str(item).encode("latin-1")


def _headers_to_native_string(
    headers: typing.Iterable[tuple[bytes, bytes]]
) -> typing.Iterator[tuple[str, str]]:
    # Everything coming from h11 is bytes; decode the way http.client does.
    for name, value in headers:
        yield name.decode("latin-1"), value.decode("latin-1")


class HTTPResponseHandle:
    """
    The response side of an :class:`HTTPRequest`.

    Body chunks are queued by the connection as they arrive and handed out by
    async iteration. A connection failure in the middle of the body is raised
    from the iterator. :meth:`close` drops the connection; it is safe to call
    more than once.
    """

    def __init__(self, request: HTTPRequest, event: h11.Response) -> None:
        self.status: int = event.status_code
        self.reason = bytes(event.reason).decode("latin-1")
        self.http_version = bytes(event.http_version).decode("ascii")
        self.headers = HTTPHeaderDict(_headers_to_native_string(event.headers))
        self._request = request
        self._queue: asyncio.Queue[typing.Union[bytes, BaseException, _EndOfBody]]
        self._queue = asyncio.Queue()
        self._finished = False
        self._closed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status}]>"

    @property
    def finished(self) -> bool:
        return self._finished

    def _feed(self, item: typing.Union[bytes, BaseException, _EndOfBody]) -> None:
        if self._finished:
            return
        if not isinstance(item, bytes):
            self._finished = True
        self._queue.put_nowait(item)

    async def __aiter__(self) -> typing.AsyncIterator[bytes]:
        while not self._closed:
            item = await self._queue.get()
            if isinstance(item, _EndOfBody):
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake up a reader parked on the queue.
        self._queue.put_nowait(_EOF)
        self._request.abort()


class HTTPRequest:
    """
    The request side of one HTTP/1.1 exchange, on a connection of its own.

    The request head is held back until the first :meth:`write` or
    :meth:`end`, so whether the request has a body is known when it is sent:
    a body without ``content-length`` goes out with
    ``transfer-encoding: chunked``. ``host`` and ``user-agent`` headers are
    filled in when missing, and so is ``authorization`` when the options
    carry ``auth``.

    Errors raised outside a response body (connection failures, malformed
    responses) are passed to the callbacks registered with
    :meth:`add_error_callback`.
    """

    def __init__(
        self,
        options: RequestOptions,
        on_response: typing.Callable[[HTTPResponseHandle], None],
    ) -> None:
        self.scheme = str(options.get("scheme") or "http").lower()
        if self.scheme not in DEFAULT_PORTS:
            raise LocationValueError(f"Unsupported URL scheme: {self.scheme!r}")
        self.host = options.get("host")
        if not self.host:
            raise LocationValueError("No host specified.")
        self.port = int(options.get("port") or DEFAULT_PORTS[self.scheme])
        self.method = str(options.get("method") or "GET").upper()
        self.path = str(options.get("path") or "/")

        self._headers: dict[str, typing.Any] = dict(options.get("headers") or {})
        if "host" not in self._headers:
            self._headers["host"] = (
                self.host
                if self.port == DEFAULT_PORTS[self.scheme]
                else f"{self.host}:{self.port}"
            )
        if "user-agent" not in self._headers:
            self._headers.update(make_headers(user_agent=_get_default_user_agent()))
        if options.get("auth") and "authorization" not in self._headers:
            self._headers.update(make_headers(basic_auth=options["auth"]))

        self._on_response = on_response
        self._error_callbacks: list[typing.Callable[[BaseException], None]] = []
        self._state_machine = h11.Connection(our_role=h11.CLIENT)
        self._outgoing: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._response: HTTPResponseHandle | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._bytes_received = 0
        self._head_sent = False
        self._ended = False
        self._aborted = False
        self._sender_closed = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.method} {self.scheme}://{self.host}:{self.port}{self.path}>"

    def add_error_callback(self, callback: typing.Callable[[BaseException], None]) -> None:
        self._error_callbacks.append(callback)

    def write(self, data: bytes) -> None:
        if self._ended:
            raise ProtocolError("Cannot write to a request that has been ended")
        if self._aborted or not data:
            return
        if not self._head_sent:
            self._send_head(has_body=True)
        self._send_event(h11.Data(data=data))

    async def drain(self) -> None:
        """
        Wait until everything written so far has been handed to the socket
        and the socket has room for more. Returns right away once the request
        is aborted or its connection is gone.
        """
        if self._aborted or self._task.done():
            return
        flushed = asyncio.ensure_future(self._outgoing.join())
        try:
            await asyncio.wait({flushed, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            flushed.cancel()

    def end(self) -> None:
        if self._ended or self._aborted:
            return
        if not self._head_sent:
            self._send_head(has_body=False)
        self._ended = True
        self._send_event(h11.EndOfMessage())
        if not self._sender_closed:
            self._outgoing.put_nowait(None)

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._task.cancel()
        self._close_connection()
        if self._response is not None:
            self._response._feed(ProtocolError("Request was aborted"))

    def _send_head(self, has_body: bool) -> None:
        headers = self._headers
        if has_body and "content-length" not in headers and "transfer-encoding" not in headers:
            headers["transfer-encoding"] = "chunked"
        self._head_sent = True
        self._send_event(
            h11.Request(
                method=self.method,
                target=self.path,
                headers=list(_stringify_headers(headers)),
            )
        )

    def _send_event(self, event: typing.Any) -> None:
        try:
            data = self._state_machine.send(event)
        except h11.LocalProtocolError as e:
            raise ProtocolError(f"Invalid request: {e}") from e
        if data and not self._sender_closed:
            self._outgoing.put_nowait(data)

    def _emit_error(self, error: BaseException) -> None:
        if self._response is not None and not self._response.finished:
            self._response._feed(error)
            return
        if not self._error_callbacks:
            log.warning("Unhandled error on %r: %r", self, error)
        for callback in list(self._error_callbacks):
            callback(error)

    def _close_connection(self) -> None:
        if self._writer is not None:
            writer, self._writer = self._writer, None
            writer.close()

    async def _run(self) -> None:
        connect_host = self.host.strip("[]")
        try:
            log.debug(
                "Starting new %s connection: %s:%s", self.scheme.upper(), self.host, self.port
            )
            try:
                reader, self._writer = await asyncio.open_connection(
                    connect_host, self.port, ssl=True if self.scheme == "https" else None
                )
            except OSError as e:
                raise NewConnectionError(self.host, self.port, e) from e

            sender = asyncio.get_running_loop().create_task(self._send_loop(self._writer))
            try:
                await self._receive_loop(reader)
            finally:
                sender.cancel()
        except (h11.ProtocolError, ProtocolError, OSError) as e:
            if not isinstance(e, ProtocolError):
                e = ProtocolError(f"Connection broken: {e!r}")
            self._emit_error(e)
        finally:
            self._close_sender()
            self._close_connection()

    async def _send_loop(self, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                data = await self._outgoing.get()
                try:
                    if data is None:
                        return
                    writer.write(data)
                    await writer.drain()
                finally:
                    self._outgoing.task_done()
        except OSError as e:
            self._emit_error(ProtocolError(f"Connection broken while sending: {e!r}"))
        finally:
            self._close_sender()

    def _close_sender(self) -> None:
        # Nothing will be sent any more: release anyone waiting in drain().
        self._sender_closed = True
        while not self._outgoing.empty():
            self._outgoing.get_nowait()
            self._outgoing.task_done()

    async def _receive_loop(self, reader: asyncio.StreamReader) -> None:
        state_machine = self._state_machine
        while True:
            try:
                event = state_machine.next_event()
            except h11.RemoteProtocolError as e:
                raise ProtocolError(f"Invalid response: {e}") from e

            if event is h11.NEED_DATA:
                data = await reader.read(BUFSIZE)
                self._bytes_received += len(data)
                state_machine.receive_data(data)
                continue

            if isinstance(event, h11.InformationalResponse):
                continue

            if isinstance(event, h11.Response):
                self._response = HTTPResponseHandle(self, event)
                log.debug(
                    '%s://%s:%s "%s %s HTTP/%s" %s %s',
                    self.scheme,
                    self.host,
                    self.port,
                    self.method,
                    self.path,
                    self._response.http_version,
                    self._response.status,
                    self._response.headers.get("content-length"),
                )
                self._on_response(self._response)
            elif isinstance(event, h11.Data):
                assert self._response is not None
                self._response._feed(bytes(event.data))
            elif isinstance(event, h11.EndOfMessage) or event is h11.PAUSED:
                if self._response is None:
                    raise ProtocolError("Connection paused before a response was received")
                self._response._feed(_EOF)
                leftover, _ = state_machine.trailing_data
                if leftover:
                    self._emit_error(
                        InvalidStatusLineError(
                            f"Unexpected data after the end of the response: {bytes(leftover[:32])!r}",
                            bytes_parsed=self._bytes_received - len(leftover),
                        )
                    )
                return
            elif isinstance(event, h11.ConnectionClosed):
                raise ProtocolError("Remote end closed connection without response")


def open_request(
    options: RequestOptions,
    on_response: typing.Callable[[HTTPResponseHandle], None],
) -> HTTPRequest:
    """
    Start an HTTP request and return its writable handle.

    ``options`` takes ``scheme`` (``http`` or ``https``), ``host``, ``port``,
    ``path`` (request target, query included), ``method`` (default ``GET``),
    ``headers`` and ``auth`` (``user:password``). ``on_response`` is called on
    the event loop with an :class:`HTTPResponseHandle` once the response head
    has been read. Must be called with an event loop running.
    """
    return HTTPRequest(options, on_response)
