import logging

from sockproxy.http import Headers
from sockproxy.http import InboundRequest
from sockproxy.http import RawWireMessage
from sockproxy.options import ProxyConfig
from sockproxy.utils import strutils

logger = logging.getLogger(__name__)

HTTP_VERSION = b"HTTP/1.1"
BACKEND_HOST = b"localhost"
API_KEY_HEADER = b"x-api-key"


def assemble_request(request: InboundRequest, config: ProxyConfig) -> RawWireMessage:
    """
    Serialize a client request into the HTTP/1.1 message sent to the backend.

    Client headers are forwarded in their original order and casing. Then, in order:
    `x-api-key` if an API key is configured, `Host: localhost`, and `Content-Length`
    for non-empty bodies. A client-supplied x-api-key is forwarded as well.
    """
    head = assemble_request_head(request, config)
    return RawWireMessage(head=head, body=request.body)


def assemble_request_head(request: InboundRequest, config: ProxyConfig) -> bytes:
    first_line = _assemble_request_line(request)
    headers = _assemble_request_headers(request, config)
    return b"%s\r\n%s\r\n" % (first_line, bytes(headers))


def _assemble_request_line(request: InboundRequest) -> bytes:
    return b"%s %s %s" % (
        strutils.always_bytes(request.method, "ascii"),
        strutils.always_bytes(request.target, "utf-8", "surrogateescape"),
        HTTP_VERSION,
    )


def _assemble_request_headers(request: InboundRequest, config: ProxyConfig) -> Headers:
    headers = Headers(_forwardable_fields(request.headers, request.client))

    if config.api_key:
        headers.add(API_KEY_HEADER, config.api_key)
        logger.debug("Added API key authentication header", extra={"client": request.client})

    # The backend is addressed by socket path, it has no meaningful host name.
    headers.add(b"Host", BACKEND_HOST)

    if request.body:
        headers.add(b"Content-Length", b"%d" % len(request.body))
        logger.debug(
            f"Request body length: {len(request.body)} bytes",
            extra={"client": request.client},
        )
    return headers


def _forwardable_fields(headers: Headers, client: str):
    for name, value in headers.fields:
        if strutils.is_printable_header_value(value):
            yield name, value
        else:
            logger.warning(
                f"Skipping header {strutils.always_str(name, 'utf-8', 'replace')} "
                f"with non-printable value {strutils.bytes_to_escaped_str(value)!r}",
                extra={"client": client},
            )
