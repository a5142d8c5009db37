"""
Tests for the HTTP layer - health endpoints, error mapping, topic CSV import,
topic generation and settings updates. Route functions are called directly
with their dependencies passed in.
"""
import json
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import HTTPException

from autoblog.api.errors import autoblog_error_handler, status_code_for, value_error_handler
from autoblog.api.generate import get_job, process_step
from autoblog.api.health import health_check, readiness_check
from autoblog.api.settings import update_settings
from autoblog.api.topics import generate_from_topic, list_topics, parse_topics_csv
from autoblog.schemas.api_requests import SettingsUpdateRequest, StepRequest
from autoblog.services.queue import TopicQueue
from autoblog.services.settings_store import DatabaseSettingsProvider
from autoblog.utils.errors import (
    ConfigurationError,
    ContentQualityError,
    JobBusyError,
    JobNotFoundError,
    MissingPrerequisiteError,
    PersistenceError,
    PermanentProviderError,
    TransientProviderError,
)
from conftest import full_job_replies, make_config, text_result


def _make_mock_request(method="POST", path="/api/v1/generate/jobs"):
    request = MagicMock()
    request.method = method
    request.url.path = path
    return request


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_liveness(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == "1.0.0"
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None

    async def test_ready_with_heartbeat(self):
        mock_db = AsyncMock()
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)
        mock_redis.get = AsyncMock(return_value="2026-10-15T12:00:00+00:00")

        with patch("autoblog.utils.redis_client.get_redis", new_callable=AsyncMock, return_value=mock_redis):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "ready"
        assert result["scheduler_heartbeat"] == "2026-10-15T12:00:00+00:00"

    async def test_redis_down_is_degraded(self):
        mock_db = AsyncMock()
        with patch(
            "autoblog.utils.redis_client.get_redis",
            new_callable=AsyncMock,
            side_effect=Exception("connection refused"),
        ):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"] == {"database": True, "redis": False}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize("error,status_code", [
        (JobNotFoundError("gone"), 404),
        (JobBusyError("busy"), 409),
        (MissingPrerequisiteError("no outline"), 409),
        (ConfigurationError("no key"), 400),
        (TransientProviderError("rate limited", kind="rate_limited"), 502),
        (PermanentProviderError("quota", kind="insufficient_quota"), 502),
        (ContentQualityError("empty"), 502),
        (PersistenceError("db down"), 500),
    ])
    def test_status_codes(self, error, status_code):
        assert status_code_for(error) == status_code

    async def test_handler_body(self):
        response = await autoblog_error_handler(
            _make_mock_request(),
            PermanentProviderError("Invalid API key", kind="invalid_api_key", status_code=401),
        )
        assert response.status_code == 502
        assert json.loads(response.body) == {
            "success": False,
            "error": {"kind": "invalid_api_key", "message": "Invalid API key"},
        }

    async def test_value_error_is_bad_request(self):
        response = await value_error_handler(_make_mock_request(), ValueError("Topic is required"))
        assert response.status_code == 400
        assert json.loads(response.body)["error"]["kind"] == "validation_error"


# ---------------------------------------------------------------------------
# Generate routes
# ---------------------------------------------------------------------------


class TestGenerateRoutes:
    async def test_unknown_job(self, make_pipeline):
        pipeline, _ = make_pipeline()
        with pytest.raises(JobNotFoundError):
            await get_job("aibp_missing", pipeline=pipeline)

    async def test_step_without_body_runs_current_step(self, make_pipeline):
        pipeline, _ = make_pipeline([text_result("**Title:** Growing Tomatoes Indoors All Year Round")])
        job_id = await pipeline.create_job("indoor tomatoes")

        result = await process_step(job_id, payload=None, pipeline=pipeline)

        assert result["data"]["step"] == "outline"
        assert result["data"]["next_step"] == "content"
        assert result["data"]["job_status"] == "in_progress"

    async def test_named_step_requires_prerequisite(self, make_pipeline):
        pipeline, _ = make_pipeline()
        job_id = await pipeline.create_job("indoor tomatoes")
        with pytest.raises(MissingPrerequisiteError):
            await process_step(job_id, payload=StepRequest(step="seo"), pipeline=pipeline)


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


class TestParseTopicsCsv:
    def test_header_row(self):
        rows = parse_topics_csv(
            "topic,keywords,category_id,priority\n"
            "Composting basics,\"compost, soil\",4,2\n"
            "Winter pruning,,,\n"
        )
        assert rows[0] == {"topic": "Composting basics", "keywords": "compost, soil", "category_id": 4, "priority": 2}
        assert rows[1]["category_id"] is None
        assert rows[1]["priority"] == 0

    def test_one_topic_per_line(self):
        rows = parse_topics_csv("Composting basics\n\nWinter pruning\n")
        assert rows == [{"topic": "Composting basics"}, {"topic": "Winter pruning"}]

    def test_empty(self):
        assert parse_topics_csv("") == []


class TestTopicRoutes:
    async def test_invalid_status_filter(self, session_factory):
        queue = TopicQueue(session_factory, config=make_config())
        with pytest.raises(HTTPException) as exc_info:
            await list_topics(status="archived", limit=50, offset=0, queue=queue)
        assert exc_info.value.status_code == 400

    async def test_generate_from_topic(self, make_pipeline, session_factory):
        queue = TopicQueue(session_factory, config=make_config())
        pipeline, parts = make_pipeline(full_job_replies(), queue=queue)
        topic_id = await queue.enqueue("indoor tomatoes")

        result = await generate_from_topic(str(topic_id), payload=None, queue=queue, pipeline=pipeline)

        assert result["data"]["status"] == "completed"
        topic = await queue.get(topic_id)
        assert topic.status == "completed"
        assert parts["ledger"].entries[0]["topic_source"] == "queue"

    async def test_generate_from_claimed_topic_conflicts(self, make_pipeline, session_factory):
        queue = TopicQueue(session_factory, config=make_config())
        pipeline, _ = make_pipeline(queue=queue)
        topic_id = await queue.enqueue("indoor tomatoes")
        await queue.claim(topic_id)

        with pytest.raises(HTTPException) as exc_info:
            await generate_from_topic(str(topic_id), payload=None, queue=queue, pipeline=pipeline)
        assert exc_info.value.status_code == 409

    async def test_generate_from_missing_topic(self, make_pipeline, session_factory):
        import uuid
        queue = TopicQueue(session_factory, config=make_config())
        pipeline, _ = make_pipeline(queue=queue)

        with pytest.raises(HTTPException) as exc_info:
            await generate_from_topic(str(uuid.uuid4()), payload=None, queue=queue, pipeline=pipeline)
        assert exc_info.value.status_code == 404

    async def test_failed_generation_releases_topic_once(self, make_pipeline, session_factory):
        queue = TopicQueue(session_factory, config=make_config())
        pipeline, _ = make_pipeline(
            [TransientProviderError("Server error (503)", kind="server_error", status_code=503)],
            queue=queue,
        )
        topic_id = await queue.enqueue("indoor tomatoes")

        with pytest.raises(TransientProviderError):
            await generate_from_topic(str(topic_id), payload=None, queue=queue, pipeline=pipeline)

        topic = await queue.get(topic_id)
        assert topic.status == "pending"
        assert topic.attempts == 1


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettingsRoutes:
    async def test_schedule_change_notifies_scheduler(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        scheduler = MagicMock()
        scheduler.mark_schedule_changed = AsyncMock()

        result = await update_settings(
            SettingsUpdateRequest(values={"schedule_time": "18:30", "word_count_min": 900}),
            settings=provider,
            scheduler=scheduler,
        )

        assert result["schedule_changed"] is True
        assert result["data"]["schedule_time"] == "18:30"
        scheduler.mark_schedule_changed.assert_awaited_once()

    async def test_unchanged_schedule_does_not_notify(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        scheduler = MagicMock()
        scheduler.mark_schedule_changed = AsyncMock()

        result = await update_settings(
            SettingsUpdateRequest(values={"schedule_time": "09:00", "humanize_level": 4}),
            settings=provider,
            scheduler=scheduler,
        )

        assert result["schedule_changed"] is False
        scheduler.mark_schedule_changed.assert_not_awaited()

    async def test_unknown_setting_rejected(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        with pytest.raises(HTTPException) as exc_info:
            await update_settings(
                SettingsUpdateRequest(values={"theme": "dark"}),
                settings=provider,
                scheduler=MagicMock(),
            )
        assert exc_info.value.status_code == 400
