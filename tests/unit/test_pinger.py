"""Tests for the keep-alive pinger."""

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest
from pydantic import ValidationError

from sitewarm.config import KeepAliveConfig
from sitewarm.models import PingStatistics
from sitewarm.pinger import KeepAlivePinger


def make_config(**overrides) -> KeepAliveConfig:
    defaults = {"enabled": True, "interval": 60.0, "max_retries": 0, "retry_delay": 0.0}
    defaults.update(overrides)
    return KeepAliveConfig(**defaults)


@pytest.fixture
async def pinger(client, store):
    pinger = await KeepAlivePinger.create(make_config(), client, store)
    yield pinger
    await pinger.close()


class DescribePingCycle:
    """A cycle probes the health endpoint and commits statistics once."""

    async def it_counts_a_successful_cycle(self, pinger, backend):
        backend.route("/health", httpx.Response(200, json={"timestamp": "2024-01-15T12:00:00Z"}))

        assert await pinger.ping_once() is True

        stats = pinger.get_stats()
        assert stats.total_pings == 1
        assert stats.successful_pings == 1
        assert stats.current_streak == 1
        assert stats.last_ping_time is not None
        assert stats.last_success_time is not None
        assert stats.last_success_time >= stats.last_ping_time

    async def it_sends_warming_marker_headers(self, pinger, backend):
        backend.route("/health", httpx.Response(200))

        await pinger.ping_once()

        request = backend.calls("/health")[0]
        assert request.headers["X-Warming-Request"] == "true"
        assert request.headers["X-Warming-Source"] == "frontend-service"

    async def it_keeps_the_base_url_path_prefix(self, store, backend):
        backend.route("/service/health", httpx.Response(503))
        async with httpx.AsyncClient(
            base_url="http://backend.test/service", transport=httpx.MockTransport(backend)
        ) as prefixed:
            pinger = await KeepAlivePinger.create(make_config(), prefixed, store)

            assert await pinger.ping_once() is False

        assert pinger.health_url == "http://backend.test/service/health"
        assert str(backend.calls("/service/health")[0].url) == pinger.health_url

    async def it_skips_manual_pings_when_disabled(self, client, store, backend):
        backend.route("/health", httpx.Response(200))
        pinger = await KeepAlivePinger.create(make_config(enabled=False), client, store)

        assert await pinger.ping_once() is False

        assert backend.calls("/health") == []
        assert pinger.get_stats().total_pings == 0

    async def it_accepts_a_non_json_success_body(self, pinger, backend):
        backend.route("/health", httpx.Response(204))

        assert await pinger.ping_once() is True
        assert pinger.get_stats().successful_pings == 1

    async def it_makes_max_retries_plus_one_attempts_per_failing_cycle(self, client, store, backend):
        backend.route("/health", httpx.Response(503))
        pinger = await KeepAlivePinger.create(make_config(max_retries=2), client, store)

        assert await pinger.ping_once() is False

        assert len(backend.calls("/health")) == 3
        stats = pinger.get_stats()
        assert stats.total_pings == 1
        assert stats.successful_pings == 0
        assert stats.last_success_time is None

    async def it_treats_transport_errors_and_timeouts_like_failed_responses(
        self, client, store, backend
    ):
        backend.route(
            "/health",
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            httpx.Response(200),
        )
        pinger = await KeepAlivePinger.create(make_config(max_retries=2), client, store)

        assert await pinger.ping_once() is True

        assert len(backend.calls("/health")) == 3
        stats = pinger.get_stats()
        assert stats.total_pings == 1
        assert stats.successful_pings == 1
        assert stats.current_streak == 1

    async def it_waits_retry_delay_between_attempts(self, client, store, backend, monkeypatch):
        backend.route("/health", httpx.Response(500))
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay, *args, **kwargs):
            delays.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("sitewarm.pinger.asyncio.sleep", fake_sleep)
        pinger = await KeepAlivePinger.create(
            make_config(max_retries=3, retry_delay=30.0), client, store
        )

        await pinger.ping_once()

        assert delays == [30.0, 30.0, 30.0]

    async def it_resets_the_streak_on_a_failed_cycle(self, pinger, backend):
        backend.route(
            "/health",
            httpx.Response(200),
            httpx.Response(200),
            httpx.Response(200),
            httpx.Response(500),
            httpx.Response(200),
        )

        for _ in range(3):
            await pinger.ping_once()
        assert pinger.get_stats().current_streak == 3

        await pinger.ping_once()
        assert pinger.get_stats().current_streak == 0

        await pinger.ping_once()
        stats = pinger.get_stats()
        assert stats.current_streak == 1
        assert stats.total_pings == 5
        assert stats.successful_pings == 4

    async def it_never_raises_on_failure(self, pinger, backend):
        backend.route("/health", httpx.ConnectError("down"))

        assert await pinger.ping_once() is False


class DescribeListeners:
    """Listeners receive immutable snapshots after every update."""

    async def it_notifies_listeners_in_registration_order(self, pinger, backend):
        backend.route("/health", httpx.Response(200))
        seen = []
        pinger.add_listener(lambda stats: seen.append(("first", stats.total_pings)))
        pinger.add_listener(lambda stats: seen.append(("second", stats.total_pings)))

        await pinger.ping_once()

        assert seen == [("first", 1), ("second", 1)]

    async def it_notifies_once_per_cycle_not_per_retry(self, client, store, backend):
        backend.route("/health", httpx.Response(500))
        pinger = await KeepAlivePinger.create(make_config(max_retries=2), client, store)
        seen = []
        pinger.add_listener(seen.append)

        await pinger.ping_once()

        assert len(seen) == 1
        assert seen[0].total_pings == 1

    async def it_stops_notifying_after_unregister(self, pinger, backend):
        backend.route("/health", httpx.Response(200))
        seen = []
        unregister = pinger.add_listener(seen.append)

        await pinger.ping_once()
        unregister()
        await pinger.ping_once()

        assert len(seen) == 1

    async def it_hands_out_immutable_snapshots(self, pinger, backend):
        backend.route("/health", httpx.Response(200))
        await pinger.ping_once()

        snapshot = pinger.get_stats()
        with pytest.raises(ValidationError):
            snapshot.total_pings = 100

        await pinger.ping_once()
        assert snapshot.total_pings == 1
        assert pinger.get_stats().total_pings == 2


class DescribePersistence:
    """Statistics survive restarts, except the active flag."""

    async def it_persists_stats_without_the_active_flag(self, pinger, backend, store):
        backend.route("/health", httpx.Response(200))

        await pinger.ping_once()

        saved = json.loads(await store.get("server-warming-stats"))
        assert saved["total_pings"] == 1
        assert saved["successful_pings"] == 1
        assert "is_active" not in saved

    async def it_hydrates_stats_and_forces_inactive(self, client, store):
        persisted = PingStatistics(
            total_pings=7,
            successful_pings=5,
            current_streak=2,
            last_ping_time=datetime(2024, 1, 15, tzinfo=UTC),
            is_active=True,
        )
        await store.set("server-warming-stats", persisted.model_dump_json())

        pinger = await KeepAlivePinger.create(make_config(), client, store)

        stats = pinger.get_stats()
        assert stats.total_pings == 7
        assert stats.successful_pings == 5
        assert stats.current_streak == 2
        assert stats.last_ping_time == datetime(2024, 1, 15, tzinfo=UTC)
        assert stats.is_active is False

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"total_pings": -1}',
            '{"total_pings": 1, "successful_pings": 2}',
        ],
    )
    async def it_ignores_malformed_persisted_stats(self, client, store, raw):
        await store.set("server-warming-stats", raw)

        pinger = await KeepAlivePinger.create(make_config(), client, store)

        assert pinger.get_stats() == PingStatistics()

    async def it_keeps_running_when_saving_fails(self, pinger, backend, store, monkeypatch):
        backend.route("/health", httpx.Response(200))

        async def failing_set(key, value):
            return False

        monkeypatch.setattr(store, "set", failing_set)

        assert await pinger.ping_once() is True
        assert pinger.get_stats().total_pings == 1


class DescribeSchedule:
    """start() and stop() control the recurring timer."""

    async def it_does_nothing_when_disabled(self, client, store, backend):
        backend.route("/health", httpx.Response(200))
        pinger = await KeepAlivePinger.create(make_config(enabled=False), client, store)

        await pinger.start()
        await asyncio.sleep(0.05)

        assert pinger.is_active is False
        assert backend.calls("/health") == []

    async def it_pings_immediately_on_start(self, pinger, backend):
        backend.route("/health", httpx.Response(200))

        await pinger.start()
        await asyncio.sleep(0.05)

        assert pinger.is_active is True
        assert pinger.get_stats().total_pings == 1

    async def it_runs_a_single_timer_when_started_twice(self, client, store, backend):
        backend.route("/health", httpx.Response(200))
        pinger = await KeepAlivePinger.create(make_config(interval=0.1), client, store)

        await pinger.start()
        await pinger.start()
        await asyncio.sleep(0.35)
        await pinger.stop()

        assert pinger.get_stats().total_pings in (3, 4)

    async def it_stops_scheduling_and_persists_on_stop(self, client, store, backend):
        backend.route("/health", httpx.Response(200))
        pinger = await KeepAlivePinger.create(make_config(interval=0.05), client, store)
        seen = []
        pinger.add_listener(seen.append)

        await pinger.start()
        await asyncio.sleep(0.12)
        await pinger.stop()
        await asyncio.sleep(0.01)
        count = pinger.get_stats().total_pings
        await asyncio.sleep(0.15)

        assert pinger.is_active is False
        assert pinger.get_stats().total_pings == count
        assert seen[-1].is_active is False
        assert await store.exists("server-warming-stats")

    async def it_treats_stop_without_start_as_a_no_op(self, pinger, store):
        await pinger.stop()
        await pinger.stop()

        assert pinger.is_active is False
        assert not await store.exists("server-warming-stats")

    async def it_does_not_touch_the_timer_on_manual_ping(self, pinger, backend):
        backend.route("/health", httpx.Response(200))

        await pinger.ping_once()

        assert pinger.is_active is False
