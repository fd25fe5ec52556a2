from __future__ import annotations

import logging
import os
import sys

import click

LogLevels = [
    "error",
    "warn",
    "info",
    "debug",
]

LOG_COLORS = {logging.ERROR: "red", logging.WARNING: "yellow"}


class ProxyFormatter(logging.Formatter):
    def __init__(self, colorize: bool):
        super().__init__()
        self.colorize = colorize
        time = "[%s]"
        client = "[%s]"
        if colorize:
            time = click.style(time, fg="cyan", dim=True)
            client = click.style(client, fg="yellow", dim=True)

        self.with_client = f"{time}{client} %s"
        self.without_client = f"{time} %s"

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if self.colorize:
            message = click.style(
                message,
                fg=LOG_COLORS.get(record.levelno),
            )
        if client := getattr(record, "client", None):
            return self.with_client % (time, client, message)
        else:
            return self.without_client % (time, message)


class ProxyLogHandler(logging.StreamHandler):
    def __init__(self, stream=None):
        super().__init__(stream or sys.stderr)
        self._initiated_in_test = os.environ.get("PYTEST_CURRENT_TEST")

    def filter(self, record: logging.LogRecord) -> bool:
        # We can't remove stale handlers here because that would modify .handlers during iteration!
        return bool(
            super().filter(record)
            and (
                not self._initiated_in_test
                or self._initiated_in_test == os.environ.get("PYTEST_CURRENT_TEST")
            )
        )

    def install(self) -> None:
        if self._initiated_in_test:
            for h in list(logging.getLogger().handlers):
                if (
                    isinstance(h, ProxyLogHandler)
                    and h._initiated_in_test != self._initiated_in_test
                ):
                    h.uninstall()

        logging.getLogger().addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)


def log_tier(level: str) -> int:
    return dict(
        error=logging.ERROR,
        warn=logging.WARNING,
        info=logging.INFO,
        debug=logging.DEBUG,
    )[level]


def setup(verbosity: str = "info", stream=None) -> ProxyLogHandler:
    """
    Install a handler that writes formatted records to `stream` (default stderr).
    Colors are used if the stream is a terminal.
    """
    handler = ProxyLogHandler(stream)
    isatty = getattr(handler.stream, "isatty", None)
    handler.setFormatter(ProxyFormatter(colorize=bool(isatty and isatty())))
    handler.setLevel(log_tier(verbosity))
    handler.install()

    logging.getLogger().setLevel(logging.DEBUG)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return handler
