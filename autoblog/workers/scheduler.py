"""
Scheduler worker - fires scheduled generations from the topic queue.

One scheduled generation runs at a time across all processes: the run is
guarded by the Redis marker autoblog:lock:generation. The next trigger time
is kept in Redis (autoblog:scheduler:next_run, epoch seconds) and each
trigger is fired at most once via autoblog:scheduler:handled:{ts}, which
both the timer loop (tick) and crash recovery (check_missed_run) claim.

Outcomes of run_scheduled_generation:
- locked:           another invocation holds the generation marker
- skipped:<reason>: the eligibility gate refused (disabled, cooldown, ...)
- no_topic:         gate passed but the queue had nothing claimable
- completed:        a topic was generated and published
- failed:           generation failed (recorded on the topic, never raised)
"""
import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from autoblog.config import Settings, get_settings
from autoblog.integrations.base import CostLedger, SettingsProvider
from autoblog.schemas.job import JobOptions
from autoblog.services.pipeline import GenerationPipeline
from autoblog.services.queue import ClaimResult, TopicQueue
from autoblog.services.scheduling import check_eligibility, compute_next_run
from autoblog.utils.alerting import AlertType, send_alert
from autoblog.utils.locks import acquire_marker, release_marker
from autoblog.utils.logging import generate_correlation_id, set_correlation_id
from autoblog.utils.redis_client import get_redis, make_key
from autoblog.utils.timezone import get_zone

logger = logging.getLogger(__name__)

GENERATION_MARKER = "generation"
RESCHEDULE_MARKER = "reschedule"
HANDLED_MARKER_TTL_SECONDS = 86400
HEARTBEAT_KEY = make_key("worker_health", "scheduler")

NEXT_RUN_KEY = make_key("scheduler", "next_run")
COOLDOWN_KEY = make_key("scheduler", "cooldown")
LAST_RUN_KEY = make_key("scheduler", "last_run")


def handled_key(ts: int) -> str:
    return make_key("scheduler", "handled", str(ts))


@dataclass
class RunOutcome:
    outcome: str
    topic_id: Optional[str] = None
    job_id: Optional[str] = None
    content_ref: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class Scheduler:
    def __init__(
        self,
        pipeline: GenerationPipeline,
        queue: TopicQueue,
        settings: SettingsProvider,
        cost_ledger: CostLedger,
        redis=None,
        config: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or get_settings()
        self._pipeline = pipeline
        self._queue = queue
        self._settings = settings
        self._ledger = cost_ledger
        self._redis = redis
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz = get_zone(self.config.scheduler_timezone)

    async def _get_redis(self):
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return (now or self._clock()).astimezone(self.tz)

    async def in_cooldown(self) -> bool:
        redis = await self._get_redis()
        return await redis.get(COOLDOWN_KEY) is not None

    async def get_next_run(self) -> Optional[int]:
        redis = await self._get_redis()
        value = await redis.get(NEXT_RUN_KEY)
        return int(value) if value else None

    # ── scheduled run ──────────────────────────────────────────────────────

    async def run_scheduled_generation(self, now: Optional[datetime] = None) -> RunOutcome:
        """Run the gate and, if it passes, generate one queued topic."""
        now = self._now(now)
        redis = await self._get_redis()

        token = await acquire_marker(redis, GENERATION_MARKER, self.config.generation_lock_ttl_seconds)
        if token is None:
            logger.info("Scheduled generation skipped: another run holds the lock", extra={"outcome": "locked"})
            return RunOutcome("locked")

        try:
            eligibility = await check_eligibility(
                self._settings,
                self._ledger,
                now,
                in_cooldown=await self.in_cooldown(),
                tolerance_minutes=self.config.schedule_tolerance_minutes,
            )
            if not eligibility.allowed:
                outcome = RunOutcome(f"skipped:{eligibility.reason}")
                logger.info("Scheduled generation skipped: %s", eligibility.reason, extra={"outcome": outcome.outcome})
            else:
                outcome = await self._attempt()
        except Exception as e:
            logger.error("Scheduled generation error: %s", str(e), extra={"outcome": "failed"})
            outcome = RunOutcome("failed", error=str(e))
        finally:
            await release_marker(redis, GENERATION_MARKER, token)

        await self._record_last_run(outcome, now)
        await self.reschedule(now)
        return outcome

    async def _attempt(self) -> RunOutcome:
        topic = await self._queue.claim_next()
        if topic is None:
            logger.info("Scheduled generation: no pending topics", extra={"outcome": "no_topic"})
            return RunOutcome("no_topic")

        topic_id = str(topic.id)
        options = JobOptions(
            keywords=topic.keywords or "",
            category_id=topic.category_id,
            source="scheduled",
            queue_topic_id=topic_id,
            queue_claim_token=topic.claim_token,
        )
        job_id = None
        try:
            job_id = await self._pipeline.create_job(topic.topic, options)
            job = await self._pipeline.run_to_completion(job_id)
        except Exception as e:
            # No-op when the pipeline's failure path already released this claim
            await self._queue.release(topic_id, ClaimResult(success=False, error=str(e)), topic.claim_token)
            logger.error(
                "Scheduled generation failed for topic %s: %s", topic_id[:8], str(e),
                extra={"topic_id": topic_id, "job_id": job_id, "outcome": "failed"},
            )
            if self.config.generation_failure_alerts:
                await send_alert(
                    AlertType.GENERATION_FAILED,
                    f"Scheduled generation failed for topic \"{topic.topic[:80]}\": {e}",
                    extra={"topic_id": topic_id, "job_id": job_id},
                )
            return RunOutcome("failed", topic_id=topic_id, job_id=job_id, error=str(e))

        logger.info(
            "Scheduled generation completed: topic=%s content=%s", topic_id[:8], job.content_ref,
            extra={"topic_id": topic_id, "job_id": job_id, "outcome": "completed"},
        )
        return RunOutcome("completed", topic_id=topic_id, job_id=job_id, content_ref=job.content_ref)

    async def _record_last_run(self, outcome: RunOutcome, now: datetime) -> None:
        try:
            redis = await self._get_redis()
            await redis.set(LAST_RUN_KEY, json.dumps({"at": now.isoformat(), **outcome.to_dict()}))
        except Exception as e:
            logger.warning("Could not record last scheduler run: %s", str(e))

    # ── trigger bookkeeping ────────────────────────────────────────────────

    async def reschedule(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Store the next trigger time, or clear it when scheduling is off."""
        now = self._now(now)
        redis = await self._get_redis()

        token = await acquire_marker(redis, RESCHEDULE_MARKER, self.config.reschedule_lock_ttl_seconds)
        if token is None:
            logger.debug("Reschedule already in progress elsewhere")
            return None
        try:
            if not await self._settings.get("schedule_enabled"):
                await redis.delete(NEXT_RUN_KEY)
                logger.info("Scheduling disabled, next run cleared")
                return None

            next_run = compute_next_run(
                await self._settings.get("schedule_frequency"),
                await self._settings.get("schedule_time"),
                now,
                self.tz,
            )
            await redis.set(NEXT_RUN_KEY, str(int(next_run.timestamp())))
            logger.info("Next scheduled run: %s", next_run.isoformat())
            return next_run
        finally:
            await release_marker(redis, RESCHEDULE_MARKER, token)

    async def _fire_once(self, ts: int) -> Optional[RunOutcome]:
        redis = await self._get_redis()
        claimed = await redis.set(handled_key(ts), "1", nx=True, ex=HANDLED_MARKER_TTL_SECONDS)
        if not claimed:
            logger.debug("Trigger %d already handled", ts)
            return None
        set_correlation_id(generate_correlation_id())
        return await self.run_scheduled_generation()

    async def check_missed_run(self, now: Optional[datetime] = None) -> Optional[RunOutcome]:
        """Fire a trigger that passed less than the grace period ago and was never handled."""
        now = self._now(now)
        next_run = await self.get_next_run()
        if next_run is None:
            return None
        overdue = now.timestamp() - next_run
        if 0 < overdue < self.config.missed_run_grace_seconds:
            logger.warning("Missed scheduled run detected (%ds late), running now", int(overdue))
            return await self._fire_once(next_run)
        return None

    async def tick(self, now: Optional[datetime] = None) -> Optional[RunOutcome]:
        """One timer pass: fire the trigger if due, arm one if none is stored."""
        now = self._now(now)
        next_run = await self.get_next_run()
        if next_run is None:
            await self.reschedule(now)
            return None

        overdue = now.timestamp() - next_run
        if overdue < 0:
            return None
        if overdue >= self.config.missed_run_grace_seconds:
            logger.warning("Scheduled run at %d is %ds stale, skipping to the next one", next_run, int(overdue))
            await self.reschedule(now)
            return None
        return await self._fire_once(next_run)

    async def mark_schedule_changed(self) -> Optional[datetime]:
        """Start the post-change cooldown and re-arm the trigger."""
        redis = await self._get_redis()
        await redis.set(COOLDOWN_KEY, "1", ex=self.config.schedule_cooldown_seconds)
        logger.info("Schedule settings changed, cooldown %ds", self.config.schedule_cooldown_seconds)
        return await self.reschedule()

    async def get_status(self) -> dict:
        redis = await self._get_redis()
        next_run = await self.get_next_run()
        last_run = await redis.get(LAST_RUN_KEY)
        return {
            "enabled": await self._settings.get("schedule_enabled"),
            "frequency": await self._settings.get("schedule_frequency"),
            "time": await self._settings.get("schedule_time"),
            "timezone": str(self.tz),
            "next_run": (
                datetime.fromtimestamp(next_run, tz=self.tz).isoformat() if next_run else None
            ),
            "in_cooldown": await self.in_cooldown(),
            "last_run": json.loads(last_run) if last_run else None,
            "queue": await self._queue.stats(),
        }


async def _heartbeat(redis, poll_seconds: int):
    """Store heartbeat timestamp in Redis."""
    try:
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=poll_seconds * 5,
        )
    except Exception as e:
        logger.debug("Scheduler heartbeat failed: %s", str(e))


async def run_scheduler_worker(scheduler: Scheduler, trends=None):
    """
    Main loop - recover a missed trigger on startup, then tick every poll interval.
    With a TrendsService, trending topics are also refreshed when due.
    """
    poll_seconds = scheduler.config.scheduler_poll_seconds
    logger.info("Scheduler worker started (poll every %ds)", poll_seconds)

    try:
        await scheduler.check_missed_run()
        await scheduler.reschedule()
    except Exception as e:
        logger.error("Scheduler startup error: %s", str(e))

    while True:
        try:
            await scheduler.tick()
        except Exception as e:
            logger.error("Scheduler tick error: %s", str(e))

        if trends is not None:
            try:
                await trends.refresh_if_due()
            except Exception as e:
                logger.error("Trending refresh error: %s", str(e))

        await _heartbeat(await scheduler._get_redis(), poll_seconds)
        await asyncio.sleep(poll_seconds)
