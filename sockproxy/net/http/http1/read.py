"""
Parse raw HTTP/1.1 responses received from the backend.

    response     = header-block CRLF CRLF body
    header-block = status-line *( LF header-line )   ; lines may end in CRLF
    status-line  = http-version SP status-code [ SP reason ]
    header-line  = name ":" value                    ; lines without ":" are skipped
    body         = *OCTET

Only the header block is decoded as text. The body is located by byte offset
and returned untouched, so binary payloads survive.
"""

import logging
import re

from sockproxy import exceptions
from sockproxy.http import Headers
from sockproxy.http import ParsedResponse
from sockproxy.utils import strutils

logger = logging.getLogger(__name__)

HEAD_TERMINATOR = b"\r\n\r\n"
FALLBACK_STATUS_CODE = 500

_chunk_size = re.compile(rb"([0-9a-fA-F]+)[ \t]*(?:;[^\r\n]*)?")


def split_response(data: bytes) -> tuple[bytes, bytes]:
    """
    Split a response into header block and body at the first blank line.

    Raises:
        MalformedResponse, if there is no blank line.
    """
    head, sep, body = data.partition(HEAD_TERMINATOR)
    if not sep:
        if not data:
            raise exceptions.MalformedResponse("Empty response")
        raise exceptions.MalformedResponse("Invalid HTTP response format", describe(data))
    return head, body


def read_response(data: bytes) -> ParsedResponse:
    """
    Parse a complete HTTP response.

    Raises:
        MalformedResponse: The separator between header block and body is missing,
            or there is no status line.
        EncodingError: The header block is not valid UTF-8.
    """
    head, body = split_response(data)
    try:
        text = head.decode("utf-8")
    except UnicodeDecodeError as e:
        raise exceptions.EncodingError("Invalid response encoding", str(e)) from e

    lines = _split_lines(text)
    if not lines:
        raise exceptions.MalformedResponse("Empty response")

    status_line = lines[0]
    logger.debug(f"Response status line: {status_line}")
    try:
        status_code, reason = _read_status_line(status_line)
    except exceptions.StatusParseError as e:
        logger.error(str(e))
        status_code, reason = FALLBACK_STATUS_CODE, ""

    if _is_interim(status_code) and body.startswith(b"HTTP/"):
        logger.debug(f"Skipping interim response: {status_line}")
        return read_response(body)

    headers = _read_headers(lines[1:])
    return ParsedResponse(
        status_code=status_code,
        reason=reason,
        headers=headers,
        body=body,
    )


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    return [line.removesuffix("\r") for line in text.split("\n")]


def _is_interim(status_code: int) -> bool:
    # 101 switches protocols, everything after it belongs to the new protocol.
    return 100 <= status_code <= 199 and status_code != 101


def _read_status_line(line: str) -> tuple[int, str]:
    parts = line.split(None, 2)
    if len(parts) < 2:
        raise exceptions.StatusParseError(line)
    code = parts[1]
    if not code.isascii() or not code.isdigit():
        raise exceptions.StatusParseError(line)
    reason = parts[2] if len(parts) == 3 else ""
    return int(code), reason


def _read_headers(lines: list[str]) -> Headers:
    headers = Headers()
    for line in lines:
        name, sep, value = line.partition(":")
        if not sep:
            logger.debug(f"Skipping response header line without colon: {line!r}")
            continue
        headers.add(name.strip(), value.strip())
    return headers


def expected_body_size(
    method: str, status_code: int, headers: Headers
) -> int | None:
    """
    Returns:
        The expected body length of a response:
        - a non-negative integer, if the size is known in advance
        - None, if the body is chunked
        - -1, if all data should be read until end of stream.

    Invalid or conflicting framing headers give -1, in which case the
    connection close delimits the response.
    """
    # https://datatracker.ietf.org/doc/html/rfc7230#section-3.3.3
    if method.upper() == "HEAD":
        return 0
    if 100 <= status_code <= 199 or status_code in (204, 304):
        return 0

    if "transfer-encoding" in headers:
        te = headers["transfer-encoding"].lower().replace(" ", "").replace("\t", "")
        if te.endswith("chunked"):
            return None
        return -1

    if "content-length" in headers:
        sizes = headers.get_all("content-length")
        if any(x != sizes[0] for x in sizes):
            logger.debug(f"Conflicting Content-Length headers: {sizes!r}")
            return -1
        if not sizes[0].isascii() or not sizes[0].isdigit():
            logger.debug(f"Invalid Content-Length header: {sizes[0]!r}")
            return -1
        return int(sizes[0])

    return -1


class ChunkedBodyScanner:
    """
    Follows a chunked transfer coding as it arrives.

    `pos` is the offset of the next chunk-size line (or trailer line) in the
    buffer, so every call resumes where the previous one stopped and only
    looks at bytes that were not consumed yet.
    """

    def __init__(self, start: int = 0):
        self.pos = start
        self.in_trailer = False
        self.invalid = False

    def complete(self, buf: bytes | bytearray) -> bool:
        while not self.invalid and self.pos <= len(buf):
            line_end = buf.find(b"\r\n", self.pos)
            if line_end == -1:
                return False
            if self.in_trailer:
                # trailer section ends with an empty line
                if line_end == self.pos:
                    return True
                self.pos = line_end + 2
                continue
            m = _chunk_size.fullmatch(buf, self.pos, line_end)
            if not m:
                # Not something we can frame. Wait for the backend to close.
                self.invalid = True
                return False
            size = int(m.group(1), 16)
            self.pos = line_end + 2
            if size == 0:
                self.in_trailer = True
            else:
                self.pos += size + 2
        return False


class ResponseFraming:
    """
    Decides whether a growing receive buffer holds a complete response.

    The header block is located and parsed once. After that, a Content-Length
    response only needs a length comparison and a chunked one is followed by a
    `ChunkedBodyScanner`, so checking after every read costs time proportional
    to the new data, not to everything received so far.
    """

    def __init__(self, method: str):
        self.method = method
        self._head_start = 0
        self._search_from = 0
        self._body_start: int | None = None
        self._body_size: int | None = -1
        self._chunks: ChunkedBodyScanner | None = None

    def complete(self, buf: bytes | bytearray) -> bool:
        while self._body_start is None:
            end = buf.find(HEAD_TERMINATOR, self._search_from)
            if end == -1:
                self._search_from = max(
                    self._head_start, len(buf) - len(HEAD_TERMINATOR) + 1
                )
                return False
            body_start = end + len(HEAD_TERMINATOR)
            status_code, headers = _framing_head(bytes(buf[self._head_start : end]))
            if status_code is not None and _is_interim(status_code):
                # The final response follows on the same connection.
                self._head_start = self._search_from = body_start
                continue
            self._body_start = body_start
            if status_code is not None:
                self._body_size = expected_body_size(self.method, status_code, headers)
            if self._body_size is None:
                self._chunks = ChunkedBodyScanner(body_start)

        if self._chunks is not None:
            return self._chunks.complete(buf)
        elif self._body_size == -1:
            return False
        else:
            assert self._body_size is not None
            return len(buf) - self._body_start >= self._body_size


def _framing_head(head: bytes) -> tuple[int | None, Headers]:
    """Status code and headers of a header block, or None if there is no usable status."""
    try:
        lines = _split_lines(head.decode("utf-8"))
        status_code, _ = _read_status_line(lines[0])
    except (UnicodeDecodeError, IndexError, exceptions.StatusParseError):
        return None, Headers()
    return status_code, _read_headers(lines[1:])


def chunked_body_complete(body: bytes) -> bool:
    """
    Check whether `body` holds a complete chunked transfer coding, including the
    terminating zero-length chunk and trailer section.
    """
    return ChunkedBodyScanner().complete(body)


def response_complete(data: bytes, method: str) -> bool:
    """
    Check whether the bytes received so far form a complete response.

    Returns False if more data may follow, in which case the caller keeps
    reading until the backend closes the connection. Use `ResponseFraming`
    to check a buffer repeatedly as it grows.
    """
    return ResponseFraming(method).complete(data)


def describe(data: bytes, limit: int = 64) -> str:
    """Short, safe representation of raw response bytes for diagnostics."""
    if len(data) > limit:
        return strutils.bytes_to_escaped_str(data[:limit]) + "..."
    return strutils.bytes_to_escaped_str(data)
