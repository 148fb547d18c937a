import asyncio
import json

from unisphere.realtime.frames import Frame
from unisphere.realtime.hub import Hub
from unisphere.realtime.session import SendQueue


class StubSession:
    """Just the parts of a session the hub touches."""

    def __init__(self, community_id: int, buffer: int = 256):
        self.community_id = community_id
        self.send_queue = SendQueue(buffer)

    def payloads(self) -> list[dict]:
        return [json.loads(item) for item in self.send_queue.drain_nowait()]


def text(community_id: int, n: int) -> Frame:
    return Frame(type="text", id=n, community_id=community_id, sender_id=7, content=f"m{n}")


def run(scenario):
    async def wrapper():
        hub = Hub(listener_buffer=8)
        hub.start()
        try:
            return await scenario(hub)
        finally:
            await hub.stop()

    return asyncio.run(wrapper())


def test_publish_reaches_only_the_target_community():
    async def scenario(hub):
        a, b, other = StubSession(42), StubSession(42), StubSession(1)
        for s in (a, b, other):
            hub.register(s)
        hub.publish(text(42, 1))
        await hub.drain()
        return a.payloads(), b.payloads(), other.payloads(), hub.clients_count(42)

    a, b, other, count = run(scenario)
    assert [p["id"] for p in a] == [1]
    assert [p["id"] for p in b] == [1]
    assert other == []
    assert count == 2


def test_delivery_order_matches_publish_order():
    async def scenario(hub):
        sessions = [StubSession(42) for _ in range(3)]
        for s in sessions:
            hub.register(s)
        for n in range(1, 101):
            hub.publish(text(42, n))
        await hub.drain()
        return [s.payloads() for s in sessions]

    for payloads in run(scenario):
        assert [p["id"] for p in payloads] == list(range(1, 101))


def test_frames_are_serialized_with_camel_case_and_no_nulls():
    async def scenario(hub):
        s = StubSession(42)
        hub.register(s)
        hub.publish(text(42, 5))
        await hub.drain()
        return s.payloads()

    [payload] = run(scenario)
    assert payload == {"type": "text", "id": 5, "communityId": 42, "senderId": 7, "content": "m5"}


def test_slow_consumer_is_evicted_without_blocking_others():
    async def scenario(hub):
        slow = StubSession(42, buffer=256)
        fast = StubSession(42, buffer=1024)
        hub.register(slow)
        hub.register(fast)
        for n in range(300):
            hub.publish(text(42, n))
        await hub.drain()
        return slow, fast, hub.clients_count(42)

    slow, fast, count = run(scenario)
    assert count == 1
    assert slow.send_queue.closed
    assert not fast.send_queue.closed
    assert slow.send_queue.qsize() == 256
    assert [p["id"] for p in fast.payloads()] == list(range(300))


def test_listener_sees_every_frame_even_without_sessions():
    async def scenario(hub):
        listener = hub.add_listener()
        hub.publish(text(99, 1))
        hub.publish(text(98, 2))
        await hub.drain()
        return [listener.get_nowait().id for _ in range(listener.qsize())]

    assert run(scenario) == [1, 2]


def test_full_listener_is_skipped():
    async def scenario(hub):
        full = hub.add_listener(maxsize=1)
        roomy = hub.add_listener(maxsize=10)
        session = StubSession(42)
        hub.register(session)
        for n in range(3):
            hub.publish(text(42, n))
        await hub.drain()
        return full.qsize(), roomy.qsize(), len(session.payloads())

    assert run(scenario) == (1, 3, 3)


def test_removed_listener_stops_receiving():
    async def scenario(hub):
        listener = hub.add_listener()
        hub.publish(text(42, 1))
        await hub.drain()
        hub.remove_listener(listener)
        hub.publish(text(42, 2))
        await hub.drain()
        return listener.qsize()

    assert run(scenario) == 1


def test_unregister_closes_queue_and_is_idempotent():
    async def scenario(hub):
        s = StubSession(42)
        hub.register(s)
        hub.unregister(s)
        hub.unregister(s)
        await hub.drain()
        return s.send_queue.closed, hub.clients_count(42)

    assert run(scenario) == (True, 0)


def test_stop_closes_every_session_queue():
    async def scenario():
        hub = Hub()
        hub.start()
        sessions = [StubSession(1), StubSession(2)]
        for s in sessions:
            hub.register(s)
        await hub.drain()
        await hub.stop()
        return [s.send_queue.closed for s in sessions]

    assert asyncio.run(scenario()) == [True, True]


def test_send_queue_drains_before_reporting_close():
    async def scenario():
        queue = SendQueue(maxsize=2)
        queue.put_nowait("a")
        queue.put_nowait("b")
        try:
            queue.put_nowait("c")
        except asyncio.QueueFull:
            overflow = True
        else:
            overflow = False
        queue.close()
        return overflow, [await queue.get(), await queue.get(), await queue.get()]

    assert asyncio.run(scenario()) == (True, ["a", "b", None])
