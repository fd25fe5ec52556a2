"""
TCP listener in front of the proxy pipeline.

    - Spawn one coroutine per client connection (asyncio.start_server does that for us)
    - Read one HTTP/1.1 request with h11
    - Run it through a fresh pipeline invocation and write back the result
    - Close the connection
"""

import asyncio
import hmac
import logging

import h11

from sockproxy.http import client_identity
from sockproxy.http import Headers
from sockproxy.http import InboundRequest
from sockproxy.net.http import status_codes
from sockproxy.options import ProxyConfig
from sockproxy.proxy.pipeline import ProxyOrchestrator
from sockproxy.proxy.projector import make_error_response
from sockproxy.utils import asyncio_utils
from sockproxy.utils import human

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536


class ClientError(Exception):
    """The client sent something we cannot proxy."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class ProxyServer:
    _server: asyncio.Server | None = None

    def __init__(self, config: ProxyConfig):
        self.config = config
        self.orchestrator = ProxyOrchestrator(config)
        self._handlers: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def listen_addrs(self) -> tuple[tuple, ...]:
        if self._server is None:
            return ()
        try:
            return tuple(sock.getsockname() for sock in self._server.sockets)
        except OSError:  # pragma: no cover
            return ()

    async def start(self) -> None:
        assert self._server is None
        host, port = self.config.listen_host, self.config.listen_port
        try:
            self._server = await asyncio.start_server(self.handle_stream, host, port)
        except OSError as e:
            raise OSError(
                e.errno, f"Proxy failed to listen on {host or '*'}:{port} with {e}"
            ) from e
        addrs = " and ".join({human.format_address(a) for a in self.listen_addrs})
        logger.info(f"Proxy listening at {addrs}, forwarding to {self.config.socket_path}.")

    async def stop(self) -> None:
        assert self._server is not None
        listen_addrs = self.listen_addrs
        server, self._server = self._server, None
        server.close()
        for task in list(self._handlers):
            logger.debug(f"Cancelling {asyncio_utils.task_repr(task)}")
            task.cancel("proxy stopped")
        if self._handlers:
            await asyncio.wait(self._handlers)
        addrs = " and ".join({human.format_address(a) for a in listen_addrs})
        logger.info(f"Proxy at {addrs} stopped.")

    async def serve_forever(self) -> None:
        assert self._server is not None
        await self._server.serve_forever()

    async def handle_stream(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peername = writer.get_extra_info("peername")
        asyncio_utils.set_current_task_debug_info(name="client handler", client=peername)
        task = asyncio.current_task()
        assert task
        self._handlers.add(task)
        logger.debug("client connect", extra={"client": human.format_address(peername)})
        try:
            response = await self.handle_client(reader, writer, peername)
            if response is not None:
                writer.write(response)
                await writer.drain()
        except OSError as e:
            logger.info(
                f"client connection error: {e}",
                extra={"client": human.format_address(peername)},
            )
        except Exception as e:
            logger.error(
                f"connection handler has crashed: {e}",
                exc_info=(type(e), e, e.__traceback__),
                extra={"client": human.format_address(peername)},
            )
        finally:
            self._handlers.discard(task)
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            logger.debug("client disconnect", extra={"client": human.format_address(peername)})

    async def handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        peername: tuple | None,
    ) -> bytes | None:
        try:
            request = await read_request(reader, writer, peername)
        except ClientError as e:
            logger.info(
                f"Rejecting client request: {e}",
                extra={"client": human.format_address(peername)},
            )
            return make_error_response(e.status_code, str(e))
        if request is None:
            return None

        if self.config.require_api_key and not self._api_key_matches(request):
            logger.warning(
                f"Rejecting {request.method} {request.target}: invalid API key",
                extra={"client": request.client},
            )
            return make_error_response(
                status_codes.FORBIDDEN, "Forbidden: Invalid API Key"
            )

        return await self.orchestrator.handle(request)

    def _api_key_matches(self, request: InboundRequest) -> bool:
        assert self.config.api_key
        supplied = request.headers.get_all("x-api-key")
        return len(supplied) == 1 and hmac.compare_digest(
            supplied[0].encode("utf-8", "surrogateescape"),
            self.config.api_key.encode(),
        )


async def read_request(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    peername: tuple | None = None,
) -> InboundRequest | None:
    """
    Read one complete request from the client.

    Returns:
        The request, or None if the client closed the connection before sending one.

    Raises:
        ClientError, if the request is malformed.
    """
    conn = h11.Connection(h11.SERVER)
    head: h11.Request | None = None
    body = bytearray()
    try:
        while True:
            event = conn.next_event()
            if event is h11.NEED_DATA:
                if conn.they_are_waiting_for_100_continue:
                    writer.write(
                        conn.send(h11.InformationalResponse(status_code=100, headers=[]))
                    )
                    await writer.drain()
                conn.receive_data(await reader.read(READ_CHUNK_SIZE))
            elif isinstance(event, h11.Request):
                head = event
            elif isinstance(event, h11.Data):
                body += event.data
            elif isinstance(event, h11.EndOfMessage):
                break
            elif isinstance(event, h11.ConnectionClosed):
                return None
            else:  # pragma: no cover
                raise AssertionError(f"Unexpected event: {event!r}")
    except h11.RemoteProtocolError as e:
        raise ClientError(
            e.error_status_hint or status_codes.BAD_REQUEST,
            f"Bad request: {e}",
        ) from e

    assert head is not None
    # h11 has removed any chunked framing, the body is re-framed with Content-Length.
    headers = Headers(
        (bytes(name), bytes(value))
        for name, value in head.headers.raw_items()
        if bytes(name).lower() != b"transfer-encoding"
    )
    return InboundRequest(
        method=head.method.decode("ascii"),
        target=head.target.decode("ascii"),
        headers=headers,
        body=bytes(body),
        client=client_identity(headers, peername),
    )
