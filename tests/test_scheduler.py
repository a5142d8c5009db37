"""
Tests for autoblog/workers/scheduler.py - the generation marker, outcomes,
exactly-once topic release and trigger bookkeeping in Redis.
"""
import asyncio
import json
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from autoblog.services.queue import TopicQueue
from autoblog.utils.alerting import AlertType
from autoblog.utils.errors import ConfigurationError, PermanentProviderError
from autoblog.utils.locks import marker_key
from autoblog.workers.scheduler import (
    COOLDOWN_KEY,
    HEARTBEAT_KEY,
    LAST_RUN_KEY,
    NEXT_RUN_KEY,
    Scheduler,
    handled_key,
    run_scheduler_worker,
)
from conftest import InMemoryLedger, InMemorySettings, full_job_replies, make_config

NOW = datetime(2026, 10, 15, 12, 30, tzinfo=timezone.utc)
NEXT_HOUR_TS = int(datetime(2026, 10, 15, 13, 0, tzinfo=timezone.utc).timestamp())


def _schedule_settings(**overrides):
    values = {
        "schedule_enabled": True,
        "schedule_frequency": "hourly",
        "api_verified": True,
        "image_enabled": False,
    }
    values.update(overrides)
    return InMemorySettings(**values)


@pytest.fixture
def mock_scheduler_alert():
    with patch("autoblog.workers.scheduler.send_alert", new_callable=AsyncMock) as mock:
        mock.return_value = True
        yield mock


@pytest.fixture
def make_scheduler(make_pipeline, session_factory, fake_redis, config):
    """Build (scheduler, queue, parts) over a real queue and in-memory collaborators."""

    def _make(replies=None, settings=None, ledger=None, now=NOW):
        settings = settings or _schedule_settings()
        ledger = ledger or InMemoryLedger()
        queue = TopicQueue(session_factory, config=config)
        pipeline, parts = make_pipeline(replies, settings=settings, ledger=ledger, queue=queue)
        scheduler = Scheduler(
            pipeline, queue, settings, ledger,
            redis=fake_redis, config=config, clock=lambda: now,
        )
        return scheduler, queue, parts

    return _make


class TestRunScheduledGeneration:
    async def test_generates_one_topic(self, make_scheduler, fake_redis, mock_scheduler_alert):
        scheduler, queue, parts = make_scheduler(full_job_replies())
        topic_id = await queue.enqueue("indoor tomatoes", keywords="tomatoes, grow lights")

        outcome = await scheduler.run_scheduled_generation()

        assert outcome.outcome == "completed"
        assert outcome.topic_id == str(topic_id)
        topic = await queue.get(topic_id)
        assert topic.status == "completed"
        assert topic.content_ref == outcome.content_ref
        assert parts["ledger"].entries[0]["topic_source"] == "scheduled"
        assert "tomatoes" in parts["content_store"].posts[outcome.content_ref]["tags"]

        assert await fake_redis.get(marker_key("generation")) is None
        assert json.loads(await fake_redis.get(LAST_RUN_KEY))["outcome"] == "completed"
        assert await fake_redis.get(NEXT_RUN_KEY) == str(NEXT_HOUR_TS)
        mock_scheduler_alert.assert_not_awaited()

    async def test_concurrent_runs_generate_once(self, make_scheduler, mock_scheduler_alert):
        scheduler, queue, parts = make_scheduler(full_job_replies())
        await queue.enqueue("indoor tomatoes")

        results = await asyncio.gather(
            scheduler.run_scheduled_generation(),
            scheduler.run_scheduled_generation(),
        )

        assert sorted(r.outcome for r in results) == ["completed", "locked"]
        assert len(parts["content_store"].posts) == 1

    async def test_sequential_runs_drain_queue(self, make_scheduler, mock_scheduler_alert):
        scheduler, queue, _ = make_scheduler(full_job_replies())
        await queue.enqueue("indoor tomatoes")

        first = await scheduler.run_scheduled_generation()
        second = await scheduler.run_scheduled_generation()

        assert first.outcome == "completed"
        assert second.outcome == "no_topic"

    async def test_locked_when_marker_held(self, make_scheduler, fake_redis):
        scheduler, queue, _ = make_scheduler()
        await fake_redis.set(marker_key("generation"), "someone-else", nx=True, ex=1800)

        outcome = await scheduler.run_scheduled_generation()

        assert outcome.outcome == "locked"
        assert await fake_redis.get(marker_key("generation")) == "someone-else"

    @pytest.mark.parametrize("settings,ledger,reason", [
        (_schedule_settings(schedule_enabled=False), InMemoryLedger(), "disabled"),
        (_schedule_settings(api_verified=False), InMemoryLedger(), "not_verified"),
        (_schedule_settings(), InMemoryLedger(can_generate=False), "daily_limit"),
        (_schedule_settings(), InMemoryLedger(budget_ok=False), "budget_exceeded"),
    ])
    async def test_gate_refusals_leave_queue_alone(self, make_scheduler, settings, ledger, reason):
        scheduler, queue, _ = make_scheduler(settings=settings, ledger=ledger)
        topic_id = await queue.enqueue("indoor tomatoes")

        outcome = await scheduler.run_scheduled_generation()

        assert outcome.outcome == f"skipped:{reason}"
        assert (await queue.get(topic_id)).status == "pending"

    async def test_pipeline_failure_releases_topic_once(self, make_scheduler, fake_redis, mock_scheduler_alert):
        scheduler, queue, parts = make_scheduler([
            PermanentProviderError("Model not found", kind="model_not_found", status_code=404),
        ])
        topic_id = await queue.enqueue("indoor tomatoes")

        outcome = await scheduler.run_scheduled_generation()

        assert outcome.outcome == "failed"
        assert "Model not found" in outcome.error
        topic = await queue.get(topic_id)
        assert topic.status == "pending"
        assert topic.attempts == 1
        assert parts["ledger"].entries[0]["status"] == "failed"
        assert await fake_redis.get(marker_key("generation")) is None

        mock_scheduler_alert.assert_not_awaited()

    async def test_failure_alert_when_enabled(self, make_scheduler, mock_scheduler_alert):
        scheduler, queue, _ = make_scheduler([
            PermanentProviderError("Model not found", kind="model_not_found", status_code=404),
        ])
        scheduler.config = make_config(generation_failure_alerts=True)
        topic_id = await queue.enqueue("indoor tomatoes")

        outcome = await scheduler.run_scheduled_generation()

        assert outcome.outcome == "failed"
        assert (await queue.get(topic_id)).attempts == 1
        mock_scheduler_alert.assert_awaited_once()
        assert mock_scheduler_alert.await_args.args[0] == AlertType.GENERATION_FAILED


    async def test_failure_before_job_starts_releases_topic(self, make_scheduler, mock_scheduler_alert):
        scheduler, queue, _ = make_scheduler()
        scheduler._pipeline.create_job = AsyncMock(side_effect=ConfigurationError("OpenAI API key is not configured"))
        topic_id = await queue.enqueue("indoor tomatoes")

        outcome = await scheduler.run_scheduled_generation()

        assert outcome.outcome == "failed"
        topic = await queue.get(topic_id)
        assert topic.status == "pending"
        assert topic.attempts == 1
        assert "API key" in topic.last_error


class TestReschedule:
    async def test_stores_next_run(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler(settings=_schedule_settings(schedule_frequency="daily", schedule_time="09:00"))

        next_run = await scheduler.reschedule()

        assert next_run == datetime(2026, 10, 16, 9, 0, tzinfo=timezone.utc)
        assert await scheduler.get_next_run() == int(next_run.timestamp())

    async def test_disabled_clears_next_run(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler(settings=_schedule_settings(schedule_enabled=False))
        await fake_redis.set(NEXT_RUN_KEY, str(NEXT_HOUR_TS))

        assert await scheduler.reschedule() is None
        assert await fake_redis.get(NEXT_RUN_KEY) is None

    async def test_schedule_change_starts_cooldown(self, make_scheduler, fake_redis, config):
        scheduler, queue, _ = make_scheduler()
        await queue.enqueue("indoor tomatoes")

        await scheduler.mark_schedule_changed()

        assert await scheduler.in_cooldown() is True
        assert fake_redis.ttls[COOLDOWN_KEY] == config.schedule_cooldown_seconds
        assert await scheduler.get_next_run() == NEXT_HOUR_TS
        outcome = await scheduler.run_scheduled_generation()
        assert outcome.outcome == "skipped:cooldown"


class TestTriggers:
    async def test_tick_arms_trigger_when_none_stored(self, make_scheduler):
        scheduler, _, _ = make_scheduler()
        assert await scheduler.tick() is None
        assert await scheduler.get_next_run() == NEXT_HOUR_TS

    async def test_tick_waits_for_future_trigger(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler()
        await fake_redis.set(NEXT_RUN_KEY, str(NEXT_HOUR_TS))
        assert await scheduler.tick() is None
        assert fake_redis.keys_matching("autoblog:scheduler:handled:*") == []

    async def test_due_trigger_fires_once(self, make_scheduler, fake_redis, mock_scheduler_alert):
        scheduler, queue, _ = make_scheduler(full_job_replies())
        await queue.enqueue("indoor tomatoes")
        due = int((NOW - timedelta(seconds=30)).timestamp())
        await fake_redis.set(NEXT_RUN_KEY, str(due))

        outcome = await scheduler.tick()
        assert outcome.outcome == "completed"
        assert await fake_redis.get(handled_key(due)) == "1"
        assert await scheduler.get_next_run() == NEXT_HOUR_TS

        # Crash recovery sees the same trigger but it is already handled
        await fake_redis.set(NEXT_RUN_KEY, str(due))
        assert await scheduler.check_missed_run() is None

    async def test_stale_trigger_skipped(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler()
        stale = int((NOW - timedelta(minutes=10)).timestamp())
        await fake_redis.set(NEXT_RUN_KEY, str(stale))

        assert await scheduler.tick() is None
        assert await fake_redis.get(handled_key(stale)) is None
        assert await scheduler.get_next_run() == NEXT_HOUR_TS

    async def test_missed_run_recovered(self, make_scheduler, fake_redis, mock_scheduler_alert):
        scheduler, queue, _ = make_scheduler()
        missed = int((NOW - timedelta(seconds=60)).timestamp())
        await fake_redis.set(NEXT_RUN_KEY, str(missed))

        outcome = await scheduler.check_missed_run()
        assert outcome.outcome == "no_topic"

    async def test_future_trigger_is_not_missed(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler()
        await fake_redis.set(NEXT_RUN_KEY, str(NEXT_HOUR_TS))
        assert await scheduler.check_missed_run() is None


class TestStatusAndWorker:
    async def test_status(self, make_scheduler, fake_redis):
        scheduler, queue, _ = make_scheduler()
        await queue.enqueue("indoor tomatoes")
        await scheduler.reschedule()

        status = await scheduler.get_status()

        assert status["enabled"] is True
        assert status["frequency"] == "hourly"
        assert status["timezone"] == "UTC"
        assert status["next_run"] == "2026-10-15T13:00:00+00:00"
        assert status["in_cooldown"] is False
        assert status["last_run"] is None
        assert status["queue"]["pending"] == 1

    async def test_worker_arms_trigger_and_heartbeats(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler()

        with patch("autoblog.workers.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            mock_sleep.side_effect = asyncio.CancelledError
            with pytest.raises(asyncio.CancelledError):
                await run_scheduler_worker(scheduler)

        assert await scheduler.get_next_run() == NEXT_HOUR_TS
        assert HEARTBEAT_KEY in fake_redis.store

    async def test_worker_refreshes_trends_and_survives_errors(self, make_scheduler, fake_redis):
        scheduler, _, _ = make_scheduler()
        trends = AsyncMock()
        trends.refresh_if_due = AsyncMock(side_effect=RuntimeError("feed down"))

        with patch("autoblog.workers.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            mock_sleep.side_effect = asyncio.CancelledError
            with pytest.raises(asyncio.CancelledError):
                await run_scheduler_worker(scheduler, trends=trends)

        trends.refresh_if_due.assert_awaited_once()
        assert HEARTBEAT_KEY in fake_redis.store
