from __future__ import annotations

import logging
import re
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import quote

from .util.stream import is_readable

log = logging.getLogger(__name__)

_TYPE_SCALAR = typing.Union[str, bytes, bytearray, memoryview, int, float]

#: Value keys checked, in order, for an explicit part content type.
MIME_KEYS = ("mime", "mime-type", "content-type")

DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"

# Punctuation left unescaped in form field names, on top of letters, digits
# and "_.-~".
_NAME_SAFE = "!~*'()"


_HTML5_REPLACEMENTS = {
    # Double quote.
    chr(0x22): "%22",
    # Replace a backslash with two.
    chr(0x5C): chr(0x5C) * 2,
}

# All control characters from 0x00 to 0x1F *except* 0x1B.
_HTML5_REPLACEMENTS.update(
    {chr(cc): f"%{cc:02X}" for cc in range(0x00, 0x1F + 1) if cc not in (0x1B,)}
)

_HTML5_PATTERN = re.compile(
    r"|".join([re.escape(needle) for needle in _HTML5_REPLACEMENTS.keys()])
)


def format_header_param_html5(name: str, value: str | bytes) -> str:
    """
    Format and quote a single header parameter using the HTML5 strategy.

    Particularly useful for header parameters which might contain
    non-ASCII values, like file names. This follows the `HTML5 Working Draft
    Section 4.10.22.7`_ and matches the behavior of curl and modern browsers.

    .. _HTML5 Working Draft Section 4.10.22.7:
        https://w3c.github.io/html/sec-forms.html#multipart-form-data

    :param name:
        The name of the parameter, a string expected to be ASCII only.
    :param value:
        The value of the parameter, provided as ``bytes`` or ``str``.
    :returns:
        A unicode string, stripped of troublesome characters.
    """
    if isinstance(value, bytes):
        value = value.decode("utf-8")

    value = _HTML5_PATTERN.sub(lambda match: _HTML5_REPLACEMENTS[match.group(0)], value)

    return f'{name}="{value}"'


def format_field_name(name: str) -> str:
    """Percent-encode a form field name for its ``Content-Disposition``."""
    return f'name="{quote(name, safe=_NAME_SAFE)}"'


@dataclass
class FileValue:
    """
    The file half of a multipart part. ``file`` is a readable byte stream,
    ``filename`` the name announced to the server. At least one of the two is
    needed; a filename alone sends an empty part that only carries metadata.
    """

    file: typing.Any = None
    filename: str | None = None
    mime: str | None = None
    headers: typing.Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: typing.Mapping[str, typing.Any]) -> FileValue:
        """
        Build from the mapping form ``{"file": ..., "filename": ...,
        "mime": ...}``. The content type may also be given as ``mime-type``
        or ``content-type``. A ``file`` that is not a readable stream is
        dropped, the rest of the value is kept.
        """
        file = value.get("file")
        if file is not None and not is_readable(file):
            log.debug("Dropping multipart file that is not readable: %r", file)
            file = None

        filename = value.get("filename")
        if filename is not None and not isinstance(filename, str):
            filename = None

        mime = None
        for key in MIME_KEYS:
            if value.get(key):
                mime = str(value[key])
                break

        headers = value.get("headers")
        if not isinstance(headers, Mapping):
            headers = {}

        return cls(file=file, filename=filename or None, mime=mime, headers=headers)

    @property
    def usable(self) -> bool:
        return self.file is not None or self.filename is not None

    @property
    def content_type(self) -> str | None:
        """
        Explicit ``mime`` first, then a ``content-type`` in ``headers``, then
        ``application/octet-stream`` for a stream sent without a filename.
        ``None`` means no ``Content-Type`` line is written for the part.
        """
        if self.mime:
            return self.mime
        for key, value in self.headers.items():
            if str(key).lower() == "content-type" and value:
                return str(value)
        if self.file is not None and self.filename is None:
            return DEFAULT_FILE_CONTENT_TYPE
        return None


@dataclass
class Part:
    """One named field of a multipart form body."""

    name: str
    value: typing.Union[_TYPE_SCALAR, FileValue]

    @classmethod
    def from_value(cls, part: typing.Any) -> Part | None:
        """
        Accept a :class:`Part` or the mapping form ``{"name": ..., "value": ...}``.
        Returns ``None`` for anything that cannot be sent: a missing or empty
        name, a missing value, a value of an unsupported type, or a file value
        left with neither ``file`` nor ``filename``.
        """
        if isinstance(part, Part):
            name, value = part.name, part.value
        elif isinstance(part, Mapping):
            name, value = part.get("name"), part.get("value")
        else:
            return None

        if not isinstance(name, str) or not name or value is None:
            return None

        if isinstance(value, bool):
            value = str(value).lower()

        if isinstance(value, Mapping):
            value = FileValue.from_value(value)
        elif isinstance(value, FileValue):
            value = FileValue.from_value(vars(value))
        elif not isinstance(value, (str, bytes, bytearray, memoryview, int, float)):
            return None

        if isinstance(value, FileValue) and not value.usable:
            return None

        return cls(name=name, value=value)


def iter_valid_parts(parts: typing.Iterable[typing.Any]) -> typing.Iterator[Part]:
    """Yield the acceptable parts of ``parts`` in order, dropping the rest."""
    for index, part in enumerate(parts):
        accepted = Part.from_value(part)
        if accepted is None:
            log.debug("Dropping invalid multipart part #%d: %r", index, part)
            continue
        yield accepted


class RequestField:
    """
    A data container for request body parameters.

    :param name:
        The name of this request field. Must be unicode.
    :param data:
        The data/value body: text, bytes, a readable stream, or ``None`` for
        an empty body.
    :param filename:
        An optional filename of the request field. Must be unicode.
    :param headers:
        An optional dict-like object of headers to initially use for the field.
    """

    def __init__(
        self,
        name: str,
        data: typing.Any,
        filename: str | None = None,
        headers: typing.Mapping[str, str | None] | None = None,
    ):
        self._name = name
        self._filename = filename
        self.data = data
        self.headers: dict[str, str | None] = {}
        if headers:
            self.headers = dict(headers)

    @classmethod
    def from_part(cls, part: Part) -> RequestField:
        """
        A :class:`~netfuture.fields.RequestField` factory from an accepted
        :class:`Part`. Numbers are sent as their decimal text.
        """
        value = part.value
        if isinstance(value, FileValue):
            request_field = cls(part.name, value.file, filename=value.filename)
            request_field.make_multipart(content_type=value.content_type)
            return request_field

        if isinstance(value, (int, float)):
            value = str(value)
        request_field = cls(part.name, value)
        request_field.make_multipart()
        return request_field

    @property
    def name(self) -> str:
        return self._name

    @property
    def filename(self) -> str | None:
        return self._filename

    def render_headers(self) -> str:
        """
        Renders the headers for this request field.
        """
        lines = []

        sort_keys = ["Content-Disposition", "Content-Type"]
        for sort_key in sort_keys:
            if self.headers.get(sort_key, False):
                lines.append(f"{sort_key}: {self.headers[sort_key]}")

        for header_name, header_value in self.headers.items():
            if header_name not in sort_keys:
                if header_value:
                    lines.append(f"{header_name}: {header_value}")

        lines.append("\r\n")
        return "\r\n".join(lines)

    def make_multipart(self, content_type: str | None = None) -> None:
        """
        Makes this request field into a multipart request field.

        This method overrides "Content-Disposition" and "Content-Type" headers
        to the request parameter.

        :param content_type:
            The 'Content-Type' of the request body.
        """
        params = [format_field_name(self._name)]
        if self._filename is not None:
            params.append(format_header_param_html5("filename", self._filename))

        self.headers["Content-Disposition"] = "; ".join(["form-data", *params])
        self.headers["Content-Type"] = content_type

