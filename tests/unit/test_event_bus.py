import asyncio

from apptracker.core.events import REFRESH_COUNTS_EVENT, EventBus


def test_publish_without_subscribers_delivers_nothing() -> None:
    assert EventBus().refresh_counts("u1", "applied") == 0


def test_subscriber_receives_only_its_users_events() -> None:
    bus = EventBus()

    async def scenario() -> dict:
        stream = bus.subscribe("u1")
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        assert bus.subscriber_count("u1") == 1

        assert bus.refresh_counts("u2", "offers") == 0
        assert bus.refresh_counts("u1", "applied") == 1
        event = await asyncio.wait_for(pending, timeout=1)
        await stream.aclose()
        return event

    event = asyncio.run(scenario())
    assert event == {"type": REFRESH_COUNTS_EVENT, "bucket": "applied"}
    assert bus.subscriber_count("u1") == 0
