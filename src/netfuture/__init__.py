"""
Future-based HTTP requests for asyncio, with streaming uploads and multipart
bodies
"""

# Set default logging handler to avoid "No handler found" warnings.
import asyncio
import logging
from logging import NullHandler
from typing import Any, Mapping, Optional, TextIO, Union

from . import exceptions
from ._collections import HTTPHeaderDict
from ._version import __version__
from .filepost import MultipartStream, build_multipart
from .request import Result, promisify_request
from .response import ResponseConfig, ResponseStream
from .transport import open_request
from .util.callback import promisify
from .util.request import make_headers

__license__ = "MIT"
__version__ = __version__

__all__ = (
    "HTTPHeaderDict",
    "MultipartStream",
    "ResponseConfig",
    "ResponseStream",
    "add_stderr_logger",
    "build_multipart",
    "exceptions",
    "get",
    "make_headers",
    "open_request",
    "promisify",
    "promisify_request",
    "request",
)

logging.getLogger(__name__).addHandler(NullHandler())


def add_stderr_logger(level: int = logging.DEBUG) -> "logging.StreamHandler[TextIO]":
    """
    Helper for quickly adding a StreamHandler to the logger. Useful for
    debugging.

    Returns the handler after adding it.
    """
    # Lives here so that __name__ is the package logger.
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.debug("Added a stderr logging handler to logger: %s", __name__)
    return handler


# ... Clean up.
del NullHandler


#: Requests over the built-in asyncio + h11 transport.
request = promisify_request(open_request)


def get(
    url_or_options: Union[str, Mapping[str, Any]],
    config: Optional[Union[ResponseConfig, Mapping[str, Any]]] = None,
) -> "asyncio.Future[Result]":
    """
    Issue a request without a body and return its future. A shortcut for
    ``request(url_or_options, "", config)``.
    """
    return request(url_or_options, "", config)
