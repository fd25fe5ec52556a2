import io
import logging
import sys

import click

from sockproxy import log


def _record(msg: str, level=logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("sockproxy", level, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


def test_formatter():
    formatter = log.ProxyFormatter(colorize=False)
    assert formatter.format(_record("hello")).endswith("] hello")
    assert "][10.0.0.1] hello" in formatter.format(_record("hello", client="10.0.0.1"))


def test_formatter_colorize():
    formatter = log.ProxyFormatter(colorize=True)
    out = formatter.format(_record("broken", level=logging.ERROR))
    assert click.style("broken", fg="red") in out
    assert click.unstyle(out).endswith("] broken")


def test_formatter_exc_info():
    formatter = log.ProxyFormatter(colorize=False)
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "sockproxy", logging.ERROR, __file__, 1, "crashed", None, sys.exc_info()
        )
    out = formatter.format(record)
    assert "crashed\nTraceback" in out
    assert "ValueError: boom" in out


def test_log_tier():
    assert log.log_tier("debug") == logging.DEBUG
    assert log.log_tier("warn") == logging.WARNING
    assert [log.log_tier(x) for x in log.LogLevels] == sorted(
        (log.log_tier(x) for x in log.LogLevels), reverse=True
    )


def test_setup():
    stream = io.StringIO()
    handler = log.setup("info", stream)
    try:
        assert not handler.formatter.colorize
        logging.getLogger("sockproxy.test").info("visible", extra={"client": "1.2.3.4"})
        logging.getLogger("sockproxy.test").debug("hidden")
    finally:
        handler.uninstall()
    assert "[1.2.3.4] visible" in stream.getvalue()
    assert "hidden" not in stream.getvalue()
    assert handler not in logging.getLogger().handlers


def test_stale_handlers_are_removed(monkeypatch):
    stream = io.StringIO()
    first = log.setup("debug", stream)
    monkeypatch.setenv("PYTEST_CURRENT_TEST", "some other test")
    second = log.setup("debug", stream)
    try:
        assert first not in logging.getLogger().handlers
        assert second in logging.getLogger().handlers
    finally:
        second.uninstall()
        first.uninstall()
