from .callback import promisify
from .request import RequestOptions, lower_headers, make_headers, normalize_options
from .stream import is_readable, iter_readable
from .url import Url, parse_url

__all__ = (
    "RequestOptions",
    "Url",
    "is_readable",
    "iter_readable",
    "lower_headers",
    "make_headers",
    "normalize_options",
    "parse_url",
    "promisify",
)
