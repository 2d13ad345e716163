import asyncio

from wa_operator.lifecycle import Lifecycle


def test_shutdown_runs_hooks_newest_first_once():
    order: list[str] = []

    async def async_hook():
        order.append("async")

    def broken_hook():
        raise RuntimeError("boom")

    lifecycle = Lifecycle()
    lifecycle.on_shutdown("first", lambda: order.append("first"))
    lifecycle.on_shutdown("broken", broken_hook)
    lifecycle.on_shutdown("async", async_hook)

    async def _run():
        await lifecycle.shutdown("test")
        await lifecycle.shutdown("again")

    asyncio.run(_run())
    assert order == ["async", "first"]
    assert lifecycle.is_stopping


def test_request_stop_releases_wait():
    async def _run():
        lifecycle = Lifecycle()
        waiter = asyncio.create_task(lifecycle.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        lifecycle.request_stop("test")
        await asyncio.wait_for(waiter, timeout=1)
        return lifecycle.is_stopping

    assert asyncio.run(_run()) is False
