import logging

from sockproxy import version
from sockproxy.http import Headers
from sockproxy.http import ParsedResponse
from sockproxy.net.http import status_codes
from sockproxy.utils import strutils

logger = logging.getLogger(__name__)


def project_response(response: ParsedResponse) -> bytes:
    """
    Turn a parsed backend response into the bytes sent to the client.

    Headers are re-emitted as received, in order, and the body is appended untouched.
    No framing headers are added or recomputed.
    """
    status_code = response.status_code
    if not status_codes.is_valid(status_code):
        logger.warning(f"Backend status code {status_code} is out of range, using 500.")
        status_code = status_codes.INTERNAL_SERVER_ERROR
    reason = status_codes.RESPONSES.get(status_code) or response.reason
    return _assemble_response_head(status_code, reason, response.headers) + response.body


def make_error_response(status_code: int, message: str = "") -> bytes:
    """
    The fixed plain-text response sent when a request could not be proxied.
    """
    body = strutils.always_bytes(message or status_codes.RESPONSES.get(status_code, ""), "utf-8")
    headers = Headers(
        Server=version.SOCKPROXY,
        Connection="close",
        Content_Type="text/plain; charset=utf-8",
        Content_Length=str(len(body)),
    )
    reason = status_codes.RESPONSES.get(status_code, "")
    return _assemble_response_head(status_code, reason, headers) + body


def _assemble_response_head(status_code: int, reason: str, headers: Headers) -> bytes:
    first_line = b"HTTP/1.1 %d %s" % (
        status_code,
        strutils.always_bytes(reason, "utf-8", "surrogateescape"),
    )
    return b"%s\r\n%s\r\n" % (first_line, bytes(headers))
