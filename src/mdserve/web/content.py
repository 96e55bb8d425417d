"""Conditional and range-aware responses for compiled pages.

:func:`serve_content` decides everything it can from the request headers and
the stream's modification time before touching the stream. Revalidation
requests that resolve to ``304`` (or ``412``) never read or compile the
document.
"""

from __future__ import annotations

import logging
from datetime import timezone
from email.utils import formatdate, parsedate_to_datetime
from typing import Mapping, Optional, Tuple

from starlette.datastructures import Headers
from starlette.responses import Response

from mdserve.render.stream import LazyContentStream

LOGGER = logging.getLogger(__name__)

MEDIA_TYPE = "text/html"


class RangeNotSatisfiable(ValueError):
    """The requested byte range lies outside the content."""


def _parse_http_date(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def check_preconditions(method: str, headers: Headers, modified: int) -> int | None:
    """Status code the preconditions short-circuit to, or ``None`` to serve content.

    ``modified`` is the document's modification time truncated to whole
    seconds, the resolution of HTTP dates.
    """
    unmodified_since = _parse_http_date(headers.get("if-unmodified-since"))
    if unmodified_since is not None and modified > unmodified_since:
        return 412

    if_none_match = headers.get("if-none-match")
    if if_none_match is not None:
        # no entity tags are produced, so only the wildcard can match
        if any(tag.strip() == "*" for tag in if_none_match.split(",")):
            return 304 if method in ("GET", "HEAD") else 412
        return None

    if method in ("GET", "HEAD"):
        modified_since = _parse_http_date(headers.get("if-modified-since"))
        if modified_since is not None and modified <= modified_since:
            return 304
    return None


def if_range_matches(value: str | None, modified: int) -> bool:
    """Whether a ``Range`` header may be honoured given ``If-Range``."""
    if value is None:
        return True
    value = value.strip()
    if value.startswith('"') or value.startswith("W/"):
        return False
    return _parse_http_date(value) == modified


def parse_range(value: str, size: int) -> Optional[Tuple[int, int]]:
    """Parse a ``Range`` header into ``(start, length)``.

    Returns ``None`` when the header should be ignored: it is malformed, uses
    another unit or asks for several ranges. Raises
    :class:`RangeNotSatisfiable` when the single range lies outside the
    content.
    """
    unit, _, spec = value.partition("=")
    if unit.strip().lower() != "bytes" or not spec or "," in spec:
        return None
    first, sep, last = spec.strip().partition("-")
    if not sep:
        return None
    first, last = first.strip(), last.strip()
    try:
        start = int(first) if first else None
        end = int(last) if last else None
    except ValueError:
        return None

    if start is None:
        # suffix range: the last ``end`` bytes
        if end is None or end < 0:
            return None
        if end == 0 or size == 0:
            raise RangeNotSatisfiable(value)
        suffix = min(end, size)
        return size - suffix, suffix

    if start < 0 or (end is not None and end < start):
        return None
    if start >= size:
        raise RangeNotSatisfiable(value)
    end = size - 1 if end is None else min(end, size - 1)
    return start, end - start + 1


def serve_content(
    method: str,
    request_headers: Mapping[str, str],
    stream: LazyContentStream,
) -> Response:
    """Build the response for a GET or HEAD on a compiled page.

    Errors raised while materializing the stream propagate to the caller.
    """
    headers = request_headers if isinstance(request_headers, Headers) else Headers(request_headers)
    modified = int(stream.mtime)
    response_headers = {"Last-Modified": formatdate(modified, usegmt=True)}

    status = check_preconditions(method, headers, modified)
    if status == 304:
        return Response(status_code=304, headers=response_headers)
    if status is not None:
        return Response(status_code=status)

    size = stream.size()
    response_headers["Accept-Ranges"] = "bytes"
    status_code = 200
    start, length = 0, size

    range_header = headers.get("range")
    if range_header and if_range_matches(headers.get("if-range"), modified):
        try:
            requested = parse_range(range_header, size)
        except RangeNotSatisfiable:
            LOGGER.debug("Unsatisfiable range %r for %s", range_header, stream.path)
            return Response(status_code=416, headers={"Content-Range": f"bytes */{size}"})
        if requested is not None:
            start, length = requested
            status_code = 206
            response_headers["Content-Range"] = f"bytes {start}-{start + length - 1}/{size}"

    response_headers["Content-Length"] = str(length)
    if method == "HEAD":
        return Response(status_code=status_code, headers=response_headers, media_type=MEDIA_TYPE)
    body = stream.read_at(start, length)
    return Response(
        content=body, status_code=status_code, headers=response_headers, media_type=MEDIA_TYPE
    )
