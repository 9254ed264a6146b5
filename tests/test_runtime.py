import asyncio
import threading

from nodesmith.runtime import BackgroundRuntime


def test_spawn_runs_coroutine_on_background_thread() -> None:
    caller = threading.get_ident()

    async def work() -> int:
        await asyncio.sleep(0)
        return threading.get_ident()

    with BackgroundRuntime() as runtime:
        worker = runtime.spawn(work()).result(timeout=5)

    assert worker != caller


def test_stop_cancels_and_awaits_pending_tasks() -> None:
    started = threading.Event()
    cleaned_up = threading.Event()

    async def forever() -> None:
        started.set()
        try:
            await asyncio.sleep(3600)
        finally:
            cleaned_up.set()

    runtime = BackgroundRuntime().start()
    future = runtime.spawn(forever())
    assert started.wait(5)

    runtime.stop()

    assert cleaned_up.is_set()
    assert future.cancelled()
    assert runtime.loop.is_closed()


def test_cancelling_the_future_cancels_the_task() -> None:
    started = threading.Event()
    cancelled = threading.Event()

    async def forever() -> None:
        started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with BackgroundRuntime() as runtime:
        future = runtime.spawn(forever())
        assert started.wait(5)
        future.cancel()
        assert cancelled.wait(5)
