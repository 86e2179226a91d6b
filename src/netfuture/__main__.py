"""
Download a URL to a file: ``python -m netfuture URL [TARGET]``.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import urljoin

import click

from . import add_stderr_logger
from . import request as default_request
from .exceptions import HTTPError, StatusError
from .request import RequestFunction
from .response import ResponseStream
from .util.url import parse_url

log = logging.getLogger(__name__)

MAX_REDIRECTS = 10


class TooManyRedirectsError(HTTPError):
    """Raised when a download keeps being redirected."""


def default_target(url: str) -> str:
    """The last segment of the URL path, or ``index.html`` for a bare path."""
    path = parse_url(url).path or ""
    return path.rstrip("/").rpartition("/")[2] or "index.html"


async def download(
    url: str,
    target: str | Path | None = None,
    *,
    fetch: RequestFunction | None = None,
    max_redirects: int = MAX_REDIRECTS,
) -> Path:
    """
    Stream ``url`` into ``target`` and return the path written.

    Redirect responses fail the request with a
    :class:`~netfuture.exceptions.StatusError` carrying ``location``; the
    request is repeated against that location up to ``max_redirects`` times.
    """
    fetch = fetch or default_request
    for _ in range(max_redirects + 1):
        try:
            response = await fetch(url, "", {"stream": True, "binary": True})
        except StatusError as e:
            if not e.is_redirect or e.location is None:
                raise
            url = urljoin(url, e.location)
            log.info("Redirected to %s", url)
            continue

        path = Path(target if target is not None else default_target(url))
        if not isinstance(response, ResponseStream):
            raise HTTPError(
                f"Expected a streamed response from {url}, got {type(response).__name__}"
            )
        async with response as body:
            with path.open("wb") as fp:
                async for chunk in body:
                    fp.write(chunk)
        return path

    raise TooManyRedirectsError(f"Exceeded {max_redirects} redirects, last location: {url}")


@click.command()
@click.argument("url")
@click.argument("target", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--verbose", "-v", is_flag=True, help="Log requests to stderr.")
def main(url: str, target: Path | None, verbose: bool) -> None:
    """
    Download URL into TARGET (default: the last segment of the URL path).
    """
    if verbose:
        add_stderr_logger()
    try:
        path = asyncio.run(download(url, target))
    except (HTTPError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    click.echo(f"Saved {url} to {path}")


if __name__ == "__main__":
    main()
