"""
One pipeline invocation per client request:

    build -> connect/send -> receive -> parse -> project

Every invocation gets its own `Pipeline` record and its own backend connection.
The only thing shared between concurrent invocations is the frozen ProxyConfig.
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass

from sockproxy import exceptions
from sockproxy.http import InboundRequest
from sockproxy.http import ParsedResponse
from sockproxy.http import RawWireMessage
from sockproxy.net.http import http1
from sockproxy.options import ProxyConfig
from sockproxy.proxy.projector import make_error_response
from sockproxy.proxy.projector import project_response
from sockproxy.proxy.transport import BackendTransport
from sockproxy.utils import human

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    RECEIVED = "received"
    BUILT = "built"
    SENT = "sent"
    RECEIVED_BACKEND_BYTES = "received-backend-bytes"
    PARSED = "parsed"
    PROJECTED = "projected"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.PROJECTED, PipelineState.FAILED)


_TRANSITIONS = {
    PipelineState.RECEIVED: PipelineState.BUILT,
    PipelineState.BUILT: PipelineState.SENT,
    PipelineState.SENT: PipelineState.RECEIVED_BACKEND_BYTES,
    PipelineState.RECEIVED_BACKEND_BYTES: PipelineState.PARSED,
    PipelineState.PARSED: PipelineState.PROJECTED,
}


@dataclass
class Pipeline:
    """State of a single pipeline invocation."""

    request: InboundRequest
    state: PipelineState = PipelineState.RECEIVED
    error: exceptions.BackendError | None = None
    wire_request: RawWireMessage | None = None
    raw_response: bytes | None = None
    response: ParsedResponse | None = None
    result: bytes | None = None
    timestamp_start: float = 0.0

    def advance(self, state: PipelineState) -> None:
        if _TRANSITIONS.get(self.state) is not state:
            raise AssertionError(f"Invalid pipeline transition: {self.state} -> {state}")
        self.state = state
        logger.debug(f"pipeline -> {state.value}", extra={"client": self.request.client})

    def fail(self, error: exceptions.BackendError) -> None:
        if self.state.terminal:
            raise AssertionError(f"Pipeline already finished: {self.state}")
        self.state = PipelineState.FAILED
        self.error = error


class ProxyOrchestrator:
    """
    Forwards client requests to the backend socket and turns the answers,
    or the failures, into response bytes for the client.
    """

    def __init__(self, config: ProxyConfig):
        self.config = config

    async def handle(self, request: InboundRequest) -> bytes:
        """
        Run one pipeline invocation. Never raises for backend failures: those are
        turned into a plain-text error response.
        """
        pipeline = await self.run(request)
        assert pipeline.state.terminal
        if pipeline.state is PipelineState.FAILED:
            assert pipeline.error
            return make_error_response(
                pipeline.error.status_code, pipeline.error.message
            )
        assert pipeline.result is not None
        return pipeline.result

    async def run(self, request: InboundRequest) -> Pipeline:
        pipeline = Pipeline(request, timestamp_start=time.time())
        logger.info(
            f"Proxying request: {request.method} {request.target} from {request.client}",
            extra={"client": request.client},
        )
        try:
            if self.config.backend_timeout is None:
                await self._run(pipeline)
            else:
                await asyncio.wait_for(
                    self._run(pipeline), timeout=self.config.backend_timeout
                )
        except asyncio.TimeoutError:
            self._fail(
                pipeline,
                exceptions.DeadlineExceeded(
                    "Backend did not respond in time",
                    f"no response after {human.pretty_duration(self.config.backend_timeout)}",
                ),
            )
        except exceptions.BackendError as e:
            self._fail(pipeline, e)
        else:
            duration = human.pretty_duration(time.time() - pipeline.timestamp_start)
            logger.info(
                f"Proxy request completed for {request.method} {request.target} "
                f"({pipeline.response.status_code if pipeline.response else '?'}, {duration})",
                extra={"client": request.client},
            )
        return pipeline

    async def _run(self, pipeline: Pipeline) -> None:
        request = pipeline.request

        pipeline.wire_request = http1.assemble_request(request, self.config)
        pipeline.advance(PipelineState.BUILT)

        async with BackendTransport(self.config.socket_path, request.client) as transport:
            await transport.send(pipeline.wire_request)
            pipeline.advance(PipelineState.SENT)

            pipeline.raw_response = await transport.receive(request.method)
            pipeline.advance(PipelineState.RECEIVED_BACKEND_BYTES)

        pipeline.response = http1.read_response(pipeline.raw_response)
        pipeline.advance(PipelineState.PARSED)
        logger.info(
            f"Backend responded with status code: {pipeline.response.status_code}",
            extra={"client": request.client},
        )

        pipeline.result = project_response(pipeline.response)
        pipeline.advance(PipelineState.PROJECTED)

    def _fail(self, pipeline: Pipeline, error: exceptions.BackendError) -> None:
        detail = f" ({error.detail})" if error.detail else ""
        logger.error(
            f"{error.kind} in state {pipeline.state.value}: {error.message}{detail}",
            extra={"client": pipeline.request.client},
        )
        pipeline.fail(error)
