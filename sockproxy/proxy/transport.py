import asyncio
import logging
from types import TracebackType

from sockproxy import exceptions
from sockproxy.http import RawWireMessage
from sockproxy.net.http import http1
from sockproxy.utils import human

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536


class BackendTransport:
    """
    A single, short-lived connection to the backend's Unix domain socket.

    One instance serves exactly one request: connect, send the request, receive
    the response, close. Use it as an async context manager so that the connection
    is closed on every path out of the pipeline.
    """

    reader: asyncio.StreamReader | None = None
    writer: asyncio.StreamWriter | None = None

    def __init__(self, socket_path: str, client: str = "unknown"):
        self.socket_path = socket_path
        self.client = client

    def log(self, message: str, level: int = logging.DEBUG) -> None:
        logger.log(level, message, extra={"client": self.client})

    async def __aenter__(self) -> "BackendTransport":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        try:
            self.reader, self.writer = await asyncio.open_unix_connection(
                self.socket_path
            )
        except OSError as e:
            self.log(
                f"Failed to connect to backend socket at {self.socket_path}: {e}",
                logging.ERROR,
            )
            raise exceptions.ConnectFailure(
                "Failed to connect to backend socket", str(e)
            ) from e
        self.log(f"Connected to backend socket at {self.socket_path}")

    async def send(self, message: RawWireMessage) -> None:
        """
        Write the request head, then the body. Each phase fails on its own
        with a WriteFailure naming the phase.
        """
        assert self.writer
        try:
            self.writer.write(message.head)
            await self.writer.drain()
        except OSError as e:
            self.log(f"Failed to write HTTP request to socket: {e}", logging.ERROR)
            raise exceptions.WriteFailure(
                "Failed to write to socket", phase="headers", detail=str(e)
            ) from e
        self.log("Wrote HTTP request headers to socket")

        if message.body:
            try:
                self.writer.write(message.body)
                await self.writer.drain()
            except OSError as e:
                self.log(f"Failed to write request body to socket: {e}", logging.ERROR)
                raise exceptions.WriteFailure(
                    "Failed to write body to socket", phase="body", detail=str(e)
                ) from e
            self.log(f"Wrote request body to socket ({human.pretty_size(len(message.body))})")

    async def receive(self, method: str = "GET") -> bytes:
        """
        Read the response. Stops at end-of-stream or, if the response declares its own
        length, as soon as the response is complete.
        """
        assert self.reader
        buf = bytearray()
        framing = http1.ResponseFraming(method)
        try:
            while True:
                chunk = await self.reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                buf += chunk
                if framing.complete(buf):
                    self.log("Response complete, not waiting for backend to close")
                    break
        except OSError as e:
            self.log(f"Failed to read response from socket: {e}", logging.ERROR)
            raise exceptions.ReadFailure("Failed to read response", str(e)) from e
        self.log(f"Read {len(buf)} bytes from backend socket")
        return bytes(buf)

    async def close(self) -> None:
        if self.writer is None:
            return
        writer, self.writer, self.reader = self.writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            self.log(f"Error while closing backend connection: {e}")

    def __repr__(self):
        return f"BackendTransport({human.format_address(self.socket_path)})"
