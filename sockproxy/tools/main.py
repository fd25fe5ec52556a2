from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Mapping
from collections.abc import Sequence

from sockproxy import exceptions
from sockproxy import log
from sockproxy import options
from sockproxy import version
from sockproxy.proxy.server import ProxyServer
from sockproxy.tools import cmdline

logger = logging.getLogger(__name__)


def process_options(
    args: argparse.Namespace, environ: Mapping[str, str] | None = None
) -> options.ProxyConfig:
    """
    Combine environment and command line into the process configuration.
    Command line arguments take precedence.

    Raises:
        OptionsError, if the configuration is invalid.
    """
    if environ is None:
        environ = os.environ

    overrides = {
        key: val
        for key, val in vars(args).items()
        if key in ("listen_host", "listen_port", "socket_path", "api_key", "require_api_key")
        and val is not None
    }
    if args.backend_timeout is not None:
        overrides["backend_timeout"] = options.parse_timeout(args.backend_timeout)
    return options.ProxyConfig.from_env(environ, **overrides)


def verbosity(args: argparse.Namespace) -> str:
    if args.quiet:
        return "error"
    if args.verbose:
        return "debug"
    return "info"


async def serve(config: options.ProxyConfig) -> None:
    server = ProxyServer(config)
    await server.start()
    if config.api_key:
        logger.info("API key authentication header enabled")
    logger.info(f"{version.SOCKPROXY} is ready to accept connections")

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    def _shutdown(*_):
        loop.call_soon_threadsafe(shutdown.set)

    # We can't use loop.add_signal_handler because that's not available on Windows' Proactorloop,
    # but signal.signal just works fine for our purposes.
    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    if hasattr(signal, "SIGPIPE"):
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)

    try:
        await shutdown.wait()
    finally:
        await server.stop()


def run(arguments: Sequence[str] | None = None) -> int:
    parser = cmdline.sockproxy()
    args = parser.parse_args(arguments)
    if args.version:
        print(version.SOCKPROXY)
        return 0

    try:
        config = process_options(args)
    except exceptions.OptionsError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    log.setup(verbosity(args))
    logger.info(f"Starting {version.SOCKPROXY}")
    logger.info(f"Binding to {config.listen_host}:{config.listen_port}")

    try:
        asyncio.run(serve(config))
    except OSError as e:
        logger.error(str(e))
        return 1
    return 0


def sockproxy(args=None) -> int | None:  # pragma: no cover
    sys.exit(run(args))
