import asyncio

from src.skillup.services.session_cleaner import SessionLifecycleCleaner, SweepReport

from tests.utils import FakeClock, FakeMonotonic, make_services


def test_sweep_reports_each_kind_of_eviction():
    clock = FakeClock()
    mono = FakeMonotonic()
    services = make_services(
        clock=clock,
        monotonic=mono,
        session_ttl_seconds=60,
        job_retention_seconds=100,
        channel_grace_seconds=100,
    )

    async def scenario():
        await services.store.get_or_create("stale")
        job_id = await services.coordinator.start({"course_topic": "X"})
        await asyncio.gather(*list(services.coordinator._tasks))
        services.channels.open("orphan")
        services.channels.close("orphan")
        clock.advance(60)
        mono.advance(100)
        report = await services.cleaner.sweep()
        return job_id, report

    job_id, report = asyncio.run(scenario())
    assert report == SweepReport(sessions_evicted=1, jobs_pruned=1, channels_discarded=1)
    assert report.as_dict() == {"sessions_evicted": 1, "jobs_pruned": 1, "channels_discarded": 1}
    assert services.store.count() == 0
    assert job_id not in services.channels


def test_sweep_keeps_live_state():
    services = make_services()

    async def scenario():
        await services.store.get_or_create("s1")
        return await services.cleaner.sweep()

    assert asyncio.run(scenario()) == SweepReport()
    assert services.store.count() == 1


def test_periodic_task_runs_and_stops():
    services = make_services()
    cleaner = SessionLifecycleCleaner(
        services.store,
        services.coordinator,
        services.channels,
        interval_seconds=0.01,
    )
    calls = {"n": 0}
    original = cleaner.sweep

    async def counting_sweep():
        calls["n"] += 1
        return await original()

    cleaner.sweep = counting_sweep

    async def scenario():
        assert cleaner.start() is True
        assert cleaner.start() is False
        await asyncio.sleep(0.05)
        await cleaner.stop()
        return cleaner.running

    assert asyncio.run(scenario()) is False
    assert calls["n"] >= 1


def test_disabled_interval_never_starts():
    services = make_services()

    async def scenario():
        started = services.cleaner.start()
        await services.cleaner.stop()
        return started

    assert asyncio.run(scenario()) is False
