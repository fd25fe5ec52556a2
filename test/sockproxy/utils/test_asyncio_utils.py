import asyncio

import pytest

from sockproxy.utils import asyncio_utils


async def test_task_debug_info():
    async def handler():
        asyncio_utils.set_current_task_debug_info(
            name="client handler", client=("127.0.0.1", 42313)
        )
        await asyncio.sleep(10)

    t = asyncio.create_task(handler())
    await asyncio.sleep(0)
    assert t.get_name().startswith("client handler")
    assert asyncio_utils.task_repr(t).startswith("127.0.0.1:42313: client handler")
    assert "(age: 0s)" in asyncio_utils.task_repr(t)
    t.cancel()
    with pytest.raises(asyncio.CancelledError):
        await t


async def test_task_repr_without_debug_info():
    t = asyncio.create_task(asyncio.sleep(0), name="plain")
    assert asyncio_utils.task_repr(t) == "plain"
    await t
