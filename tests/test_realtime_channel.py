import asyncio

import pytest

from src.skillup.domain.errors import ChannelClosed, NotFound
from src.skillup.services.realtime_channel import ChannelRegistry, QueueSubscriber, make_frame

from tests.utils import FakeMonotonic


class ListSubscriber:
    def __init__(self):
        self.frames = []
        self.ended = False

    def deliver(self, frame):
        self.frames.append(frame)

    def end(self):
        self.ended = True


class BrokenSubscriber(ListSubscriber):
    def deliver(self, frame):
        raise ConnectionError("socket gone")


def test_frames_fan_out_in_publish_order():
    reg = ChannelRegistry()
    reg.open("job")
    a, b = ListSubscriber(), ListSubscriber()
    reg.subscribe("job", a)
    reg.subscribe("job", b)
    for n in range(5):
        reg.publish("job", make_frame("log", f"m{n}"))
    assert [f.message for f in a.frames] == [f"m{n}" for n in range(5)]
    assert [f.seq for f in b.frames] == [1, 2, 3, 4, 5]


def test_late_subscriber_gets_buffer_replay_then_live_frames():
    reg = ChannelRegistry(buffer_size=2)
    reg.open("job")
    for n in range(3):
        reg.publish("job", make_frame("progress", f"p{n}"))
    late = ListSubscriber()
    reg.subscribe("job", late)
    reg.publish("job", make_frame("log", "live"))
    assert [f.message for f in late.frames] == ["p1", "p2", "live"]


def test_terminal_frame_closes_channel_and_ends_subscribers():
    reg = ChannelRegistry()
    reg.open("job")
    sub = ListSubscriber()
    reg.subscribe("job", sub)
    reg.publish("job", make_frame("success", "done", {"course_id": "c1"}))
    assert sub.ended is True
    assert reg.is_open("job") is False
    assert reg.subscriber_count("job") == 0
    with pytest.raises(ChannelClosed):
        reg.publish("job", make_frame("log", "late"))


def test_error_frame_is_terminal_only_when_flagged():
    reg = ChannelRegistry()
    reg.open("job")
    reg.publish("job", make_frame("error", "retrying"))
    assert reg.is_open("job")
    reg.publish("job", make_frame("error", "fatal"), terminal=True)
    assert not reg.is_open("job")


def test_subscribe_to_closed_channel_replays_and_ends():
    reg = ChannelRegistry()
    reg.open("job")
    reg.publish("job", make_frame("log", "one"))
    reg.publish("job", make_frame("job_complete", "two"))
    sub = ListSubscriber()
    reg.subscribe("job", sub)
    assert [f.message for f in sub.frames] == ["one", "two"]
    assert sub.ended


def test_unknown_channel_raises_not_found():
    reg = ChannelRegistry()
    with pytest.raises(NotFound):
        reg.subscribe("nope", ListSubscriber())
    with pytest.raises(NotFound):
        reg.publish("nope", make_frame("log", "x"))
    assert reg.last_frame("nope") is None


def test_failing_subscriber_is_dropped_without_affecting_others():
    reg = ChannelRegistry()
    reg.open("job")
    good, bad = ListSubscriber(), BrokenSubscriber()
    reg.subscribe("job", bad)
    reg.subscribe("job", good)
    reg.publish("job", make_frame("log", "x"))
    reg.publish("job", make_frame("log", "y"))
    assert [f.message for f in good.frames] == ["x", "y"]
    assert reg.subscriber_count("job") == 1


def test_unsubscribe_stops_delivery_only():
    reg = ChannelRegistry()
    reg.open("job")
    sub = ListSubscriber()
    reg.subscribe("job", sub)
    assert reg.unsubscribe("job", sub) is True
    assert reg.unsubscribe("job", sub) is False
    reg.publish("job", make_frame("log", "x"))
    assert sub.frames == []
    assert reg.is_open("job")


def test_open_is_idempotent():
    reg = ChannelRegistry()
    reg.open("job")
    reg.publish("job", make_frame("log", "x"))
    reg.open("job")
    assert len(reg.frames("job")) == 1


def test_closed_buffer_discarded_after_grace():
    clock = FakeMonotonic()
    reg = ChannelRegistry(grace_seconds=30, clock=clock)
    reg.open("job")
    reg.open("running")
    reg.publish("job", make_frame("success", "done"))
    clock.advance(29)
    assert reg.discard_expired() == 0
    assert reg.last_frame("job").message == "done"
    clock.advance(1)
    assert reg.discard_expired() == 1
    assert "job" not in reg
    assert "running" in reg


def test_queue_subscriber_iterates_until_end():
    async def scenario():
        reg = ChannelRegistry()
        reg.open("job")
        sub = QueueSubscriber()
        reg.subscribe("job", sub)

        async def produce():
            await asyncio.sleep(0)
            reg.publish("job", make_frame("progress", "half"))
            reg.publish("job", make_frame("success", "done"))

        producer = asyncio.create_task(produce())
        received = [frame.type async for frame in sub]
        await producer
        return received, sub.ended

    received, ended = asyncio.run(scenario())
    assert received == ["progress", "success"]
    assert ended


def test_queue_subscriber_drain_keeps_end_marker():
    async def scenario():
        sub = QueueSubscriber()
        sub.deliver(make_frame("log", "a"))
        sub.end()
        sub.deliver(make_frame("log", "ignored"))
        drained = sub.drain()
        rest = [f async for f in sub]
        return drained, rest

    drained, rest = asyncio.run(scenario())
    assert [f.message for f in drained] == ["a"]
    assert rest == []


def test_invalid_buffer_size():
    with pytest.raises(ValueError):
        ChannelRegistry(buffer_size=0)
