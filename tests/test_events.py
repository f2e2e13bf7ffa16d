import asyncio

import pytest

from batch_generation_service.jobs.events import BatchListeners, ListenerRegistry


def test_emit_reaches_sync_and_async_listeners():
    registry = ListenerRegistry()
    seen = []

    async def async_progress(batch):
        seen.append(("async", batch))

    registry.register("b1", BatchListeners(on_progress=lambda batch: seen.append(("sync", batch))))
    registry.register("b1", BatchListeners(on_progress=async_progress))
    registry.register("b2", BatchListeners(on_progress=lambda batch: seen.append(("other", batch))))

    asyncio.run(registry.emit("b1", "on_progress", "payload"))

    assert seen == [("sync", "payload"), ("async", "payload")]


def test_missing_callbacks_are_skipped():
    registry = ListenerRegistry()
    registry.register("b1", BatchListeners())
    asyncio.run(registry.emit("b1", "on_error", "batch", "message"))


def test_listener_exception_is_contained(caplog):
    registry = ListenerRegistry()
    seen = []

    def broken(batch, message):
        raise RuntimeError("bad listener")

    registry.register("b1", BatchListeners(on_error=broken))
    registry.register("b1", BatchListeners(on_error=lambda batch, message: seen.append(message)))
    caplog.set_level("ERROR")

    asyncio.run(registry.emit("b1", "on_error", "batch", "boom"))

    assert seen == ["boom"]
    assert any(record.exc_info for record in caplog.records)


def test_subscription_context_manager_unregisters_only_itself():
    registry = ListenerRegistry()
    keep = BatchListeners()
    registry.register("b1", keep)

    with registry.register("b1", BatchListeners()) as subscription:
        assert registry.count("b1") == 2
        assert subscription.active

    assert registry.count("b1") == 1
    subscription.close()
    assert registry.count("b1") == 1

    registry.unregister("b1")
    assert registry.count("b1") == 0


def test_unknown_event_is_rejected():
    registry = ListenerRegistry()
    with pytest.raises(ValueError):
        asyncio.run(registry.emit("b1", "on_finish"))
