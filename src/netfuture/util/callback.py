from __future__ import annotations

import asyncio
import functools
import typing

NodeCallback = typing.Callable[..., None]


def promisify(
    fn: typing.Callable[..., typing.Any]
) -> typing.Callable[..., asyncio.Future[typing.Any]]:
    """
    Turn ``fn(*args, callback)``, where ``callback(error, *results)`` is
    called once the work is done, into a function returning a future.

    The future fails with ``error`` when it is not ``None``. Otherwise it
    resolves to ``None`` for no results, to the result itself for one and to
    a tuple for several. ``callback`` may be called from any thread; only its
    first call counts. An exception raised by ``fn`` itself fails the future.
    """

    @functools.wraps(fn)
    def wrapper(*args: typing.Any) -> asyncio.Future[typing.Any]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[typing.Any] = loop.create_future()

        def settle(error: BaseException | None, results: tuple[typing.Any, ...]) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            elif not results:
                future.set_result(None)
            elif len(results) == 1:
                future.set_result(results[0])
            else:
                future.set_result(results)

        def callback(error: BaseException | None = None, *results: typing.Any) -> None:
            loop.call_soon_threadsafe(settle, error, results)

        try:
            fn(*args, callback)
        except Exception as e:
            settle(e, ())
        return future

    return wrapper
