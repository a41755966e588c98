import types

from src.skillup.infrastructure import events


class FakeRedisClient:
    attempt = 0
    published = []
    publish_should_fail = False

    def ping(self):
        if FakeRedisClient.attempt == 0:
            FakeRedisClient.attempt += 1
            raise Exception("connect failed")

    def publish(self, channel, payload):
        if FakeRedisClient.publish_should_fail:
            FakeRedisClient.publish_should_fail = False
            raise Exception("publish failed")
        FakeRedisClient.published.append((channel, payload))


def _fake_redis(monkeypatch):
    FakeRedisClient.attempt = 0
    FakeRedisClient.published = []
    FakeRedisClient.publish_should_fail = False

    def from_url(url, socket_timeout=0.5):
        return FakeRedisClient()

    monkeypatch.setattr(events, "redis", types.SimpleNamespace(Redis=types.SimpleNamespace(from_url=from_url)))


def test_event_bus_without_url_is_a_noop():
    bus = events.EventBus.from_url(None)
    assert bus.enabled is False
    bus.publish_event("generation.started", {"job_id": "j"})


def test_redis_publisher_recovers_after_connection_failure(monkeypatch):
    _fake_redis(monkeypatch)
    bus = events.EventBus.from_url("redis://localhost")
    assert bus.enabled is True

    bus.publish_event("generation.started", {"job_id": "j1"})
    assert FakeRedisClient.attempt == 1  # first ping failed once
    channel, payload = FakeRedisClient.published[-1]
    assert channel == "skillup.events.generation.started"
    assert '"job_id": "j1"' in payload

    FakeRedisClient.publish_should_fail = True
    bus.publish_event("generation.failed", {"job_id": "j1"})  # swallowed
    bus.publish_event("generation.failed", {"job_id": "j2"})
    assert FakeRedisClient.published[-1][0] == "skillup.events.generation.failed"


def test_publisher_without_redis_module(monkeypatch):
    monkeypatch.setattr(events, "redis", None)
    publisher = events.RedisPublisher("redis://localhost")
    assert publisher.connected is False
    assert publisher.publish("c", {"a": 1}) is False
