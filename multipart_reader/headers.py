from __future__ import annotations

import re
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import unquote

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator

QUOTE = '"'
BACKSLASH = "\\"

# Characters after which a quote opens a quoted string ("" is the start).
TOKEN_STARTS = ("", "=", ";", ",")

# Only these two escapes are resolved inside quoted strings, so that a
# Windows path sent without escaping keeps its backslashes.
QUOTED_ESCAPE_RE = re.compile(r'\\([\\"])')

# RFC 2231 extended value: charset'language'percent-encoded-value
EXTENDED_VALUE_RE = re.compile(r"^([^']*)'([^']*)'(.*)$")


class HeaderItem(NamedTuple):
    """One comma-separated item of a header value: its primary token and
    its parameters, with parameter names lower-cased.
    """

    value: str
    params: dict[str, str]


class MultipartType(NamedTuple):
    type: str
    boundary: str


def _split_unquoted(value: str, separator: str) -> Iterator[str]:
    """Splits ``value`` on ``separator``, ignoring separators that appear
    inside a quoted string.  A quote only opens a quoted string at the start
    of a token or value; anywhere else it is an ordinary character.
    """
    start = 0
    in_quotes = False
    escaped = False
    prev = ""
    for i, c in enumerate(value):
        if escaped:
            escaped = False
        elif in_quotes:
            if c == BACKSLASH:
                escaped = True
            elif c == QUOTE:
                in_quotes = False
        elif c == QUOTE and prev in TOKEN_STARTS:
            in_quotes = True
        elif c == separator:
            yield value[start:i]
            start = i + 1

        if not c.isspace():
            prev = c
    yield value[start:]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == QUOTE and value[-1] == QUOTE:
        return QUOTED_ESCAPE_RE.sub(r"\1", value[1:-1])
    return value


def _decode_extended(value: str) -> str:
    match = EXTENDED_VALUE_RE.match(value)
    if match is None:
        return unquote(value)

    charset = match.group(1) or "utf-8"
    try:
        return unquote(match.group(3), encoding=charset, errors="replace")
    except LookupError:
        return unquote(match.group(3), encoding="latin-1")


def _fix_ie_filename(filename: str) -> str:
    # IE6 sends the full path of the uploaded file instead of its name.
    if filename[1:3] == ":\\" or filename[:2] == "\\\\":
        return filename.split("\\")[-1]
    return filename


def parse_header_value(value: str | bytes) -> list[HeaderItem]:
    """
    Parses a structured header value into a list of items.

        >>> parse_header_value('form-data; name="a;b"; filename=c.txt')
        [HeaderItem(value='form-data', params={'name': 'a;b', 'filename': 'c.txt'})]

    Items are separated by commas and parameters by semicolons; neither
    splits inside a quoted string.  Quoted parameter values are unquoted,
    and RFC 2231 extended parameters (``filename*=UTF-8''...``) are decoded
    and stored under their plain name, taking precedence over it.
    """
    if isinstance(value, bytes):
        value = value.decode("latin-1")

    items: list[HeaderItem] = []
    for raw_item in _split_unquoted(value, ","):
        if not raw_item.strip():
            continue

        segments = list(_split_unquoted(raw_item, ";"))
        primary = _unquote(segments[0].strip())

        params: dict[str, str] = {}
        extended: set[str] = set()
        for segment in segments[1:]:
            if "=" not in segment:
                continue

            key, _, raw = segment.partition("=")
            key = key.strip().lower()
            raw = raw.strip()
            if not key:
                continue

            if key.endswith("*"):
                key = key[:-1]
                param = _decode_extended(_unquote(raw))
                extended.add(key)
            elif key in extended:
                continue
            else:
                param = _unquote(raw)

            if key == "filename":
                param = _fix_ie_filename(param)

            params[key] = param

        items.append(HeaderItem(primary, params))

    return items


def parse_options_header(value: str | bytes | None) -> tuple[str, dict[str, str]]:
    """
    Parses a Content-Type-like header into a value in the following format:
        (content_type, {parameters})

    Only the first item of the header is considered, and the primary value
    is lower-cased.
    """
    if not value:
        return ("", {})

    items = parse_header_value(value)
    if not items:
        return ("", {})

    item = items[0]
    return (item.value.lower(), item.params)


def get_multipart_type_and_boundary(content_type: str | bytes | None) -> MultipartType | None:
    """
    Extracts the multipart subtype and the boundary from a Content-Type
    header.  Returns None if the header is not ``multipart/*`` or carries
    no usable boundary.

        >>> get_multipart_type_and_boundary('multipart/form-data; boundary="a"')
        MultipartType(type='form-data', boundary='a')
    """
    ctype, params = parse_options_header(content_type)
    if not ctype.startswith("multipart/"):
        return None

    boundary = params.get("boundary")
    if not boundary:
        return None

    return MultipartType(ctype[len("multipart/") :], boundary)
