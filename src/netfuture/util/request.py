from __future__ import annotations

import logging
import typing
from base64 import b64encode
from collections.abc import Mapping

from .url import parse_url

log = logging.getLogger(__name__)

RequestOptions = typing.Dict[str, typing.Any]


def make_headers(
    user_agent: str | None = None,
    basic_auth: str | None = None,
) -> dict[str, str]:
    """
    Shortcuts for generating request headers. Header names come out
    lower-cased, the same form :func:`normalize_options` stores them in.

    :param user_agent:
        String representing the user-agent you want, such as
        "python-netfuture/1.0"

    :param basic_auth:
        Colon-separated username:password string for 'authorization: basic ...'
        auth header.

    Example:

    .. code-block:: python

        import netfuture

        print(netfuture.util.make_headers(user_agent="Batman/1.0", basic_auth="bat:cave"))
        # {'user-agent': 'Batman/1.0', 'authorization': 'Basic YmF0OmNhdmU='}
    """
    headers: dict[str, str] = {}

    if user_agent:
        headers["user-agent"] = user_agent

    if basic_auth:
        headers[
            "authorization"
        ] = f"Basic {b64encode(basic_auth.encode('latin-1')).decode()}"

    return headers


def lower_headers(headers: typing.Mapping[str, typing.Any]) -> dict[str, typing.Any]:
    """
    Rebuild ``headers`` with every field name lower-cased. When two names
    differ only by case the one iterated last wins.
    """
    return {str(name).lower(): value for name, value in headers.items()}


def normalize_options(
    url_or_options: str | typing.Mapping[str, typing.Any]
) -> RequestOptions:
    """
    Turn what the caller passed as the request target into the options
    mapping handed to the transport.

    A string is parsed with :func:`~netfuture.util.url.parse_url`; parse
    failures raise :class:`~netfuture.exceptions.LocationParseError`
    unchanged. A mapping is copied, so the caller's object is never touched,
    and its ``headers`` are rebuilt with lower-cased names. ``headers`` that
    are not a mapping are dropped. The returned options always hold a
    ``headers`` dict.
    """
    if isinstance(url_or_options, str):
        return parse_url(url_or_options).request_options()

    if not isinstance(url_or_options, Mapping):
        raise TypeError(
            f"Expected a URL string or an options mapping, got {type(url_or_options).__name__}"
        )

    options = dict(url_or_options)
    headers = options.get("headers")
    if isinstance(headers, Mapping):
        options["headers"] = lower_headers(headers)
    else:
        if headers is not None:
            log.debug("Dropping request headers that are not a mapping: %r", headers)
        options["headers"] = {}
    return options
