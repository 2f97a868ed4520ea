import pytest

from virtual_date.core.event_bus import EXPRESSION_CHANGED, REPLY_READY, EventBus


@pytest.fixture
async def bus():
    bus = EventBus()
    await bus.initialize()
    return bus


async def test_listeners_called_in_order(bus):
    seen = []

    async def async_listener(text):
        seen.append(("async", text))

    bus.subscribe(REPLY_READY, lambda text: seen.append(("sync", text)))
    bus.subscribe(REPLY_READY, async_listener)
    await bus.emit(REPLY_READY, "hello")

    assert seen == [("sync", "hello"), ("async", "hello")]
    assert bus.emitted[REPLY_READY] == 1


async def test_unsubscribe_handle(bus):
    seen = []
    unsubscribe = bus.subscribe(EXPRESSION_CHANGED, seen.append)
    unsubscribe()
    unsubscribe()
    await bus.emit(EXPRESSION_CHANGED, "Smile")
    assert seen == []


async def test_failing_listener_is_skipped(bus):
    seen = []
    bus.subscribe(REPLY_READY, lambda text: 1 / 0)
    bus.subscribe(REPLY_READY, seen.append)
    await bus.emit(REPLY_READY, "still here")
    assert seen == ["still here"]


async def test_unknown_event_rejected(bus):
    with pytest.raises(ValueError):
        bus.subscribe("reply_redy", print)
    with pytest.raises(ValueError):
        await bus.emit("reply_redy", "x")


async def test_nothing_delivered_after_shutdown(bus):
    seen = []
    bus.subscribe(REPLY_READY, seen.append)
    await bus.shutdown()
    await bus.emit(REPLY_READY, "late")
    assert seen == []
