from __future__ import annotations

import typing

# Base Exceptions


class HTTPError(Exception):
    """Base exception used by this module."""


class LocationValueError(ValueError, HTTPError):
    """Raised when there is something wrong with a given URL input."""


class LocationParseError(LocationValueError):
    """Raised when :func:`~netfuture.util.url.parse_url` fails to parse the URL input."""

    def __init__(self, location: str) -> None:
        message = f"Failed to parse: {location}"
        super().__init__(message)

        self.location = location

    def __reduce__(self) -> tuple[typing.Any, ...]:
        # For pickling purposes.
        return self.__class__, (self.location,)


class ProtocolError(HTTPError):
    """Raised when something unexpected happens mid-request/response."""


# Leaf Exceptions


class StatusError(HTTPError):
    """Raised by the default status validator for any status other than 200.

    :param status_code:
        The numeric status of the rejected response.
    :param location:
        The response's ``location`` header, if it sent one. Callers that want
        to follow redirects re-issue the request against this value.
    :param headers:
        All headers of the rejected response.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        location: str | None = None,
        headers: typing.Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.location = location
        self.headers = headers

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400 and bool(self.location)

    def __reduce__(self) -> tuple[typing.Any, ...]:
        # For pickling purposes.
        return (
            _rebuild_status_error,
            (self.args[0], self.status_code, self.location, self.headers),
        )


def _rebuild_status_error(
    message: str,
    status_code: int,
    location: str | None,
    headers: typing.Mapping[str, str] | None = None,
) -> StatusError:
    return StatusError(
        message, status_code=status_code, location=location, headers=headers
    )


class NewConnectionError(ProtocolError):
    """Raised when we fail to establish a new connection. Usually ECONNREFUSED."""

    def __init__(self, host: str, port: int | None, reason: Exception) -> None:
        super().__init__(f"Failed to establish a new connection to {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason

    def __reduce__(self) -> tuple[typing.Any, ...]:
        return self.__class__, (self.host, self.port, self.reason)


class InvalidStatusLineError(ProtocolError):
    """Raised when the parser meets data that does not start a valid status line.

    ``bytes_parsed`` counts what the connection had already consumed when the
    bad data showed up. A non-zero value means a complete response may already
    have been delivered, which is why the default error policy tolerates it.
    """

    def __init__(self, message: str, bytes_parsed: int = 0) -> None:
        super().__init__(message)
        self.bytes_parsed = bytes_parsed

    def __reduce__(self) -> tuple[typing.Any, ...]:
        return self.__class__, (self.args[0], self.bytes_parsed)


class BodyNotAcceptedError(TypeError, HTTPError):
    """Raised when a request body has a type no encoding exists for."""
