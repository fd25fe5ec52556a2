from __future__ import annotations

import asyncio
import os
import shutil
import tempfile

import pytest
from hypothesis import settings

skip_windows = pytest.mark.skipif(os.name == "nt", reason="Skipping due to Windows")


settings.register_profile("fast", max_examples=10, deadline=None)
settings.register_profile("deep", max_examples=100_000, deadline=None)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture()
def socket_path():
    # tmp_path can exceed the ~100 byte limit for unix socket paths.
    d = tempfile.mkdtemp(prefix="sockproxy-")
    yield os.path.join(d, "backend.sock")
    shutil.rmtree(d, ignore_errors=True)


class AsyncLogCaptureFixture:
    def __init__(self, caplog: pytest.LogCaptureFixture):
        self.caplog = caplog

    def set_level(self, level: int | str, logger: str | None = None) -> None:
        self.caplog.set_level(level, logger)

    async def await_log(self, text, timeout=2):
        await asyncio.sleep(0)
        for i in range(int(timeout / 0.01)):
            if text in self.caplog.text:
                return True
            else:
                await asyncio.sleep(0.01)
        raise AssertionError(f"Did not find {text!r} in log:\n{self.caplog.text}")

    def clear(self) -> None:
        self.caplog.clear()


@pytest.fixture
def caplog_async(caplog):
    return AsyncLogCaptureFixture(caplog)
