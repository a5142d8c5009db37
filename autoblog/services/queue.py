"""
Topic queue - priority queue of topics with atomic claim/release.

A claim is granted only by the conditional update
    UPDATE topics SET status='processing', claim_token=:token
    WHERE id=:id AND status='pending'
affecting exactly one row. Two concurrent claimers may select the same
candidate; only one of them wins the update, the other gets None.

Releasing is conditional in the same way: it only touches the row while it
is still processing under the caller's claim_token. An owner whose claim was
reclaimed as stale, or who already released, changes nothing.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from autoblog.config import Settings, get_settings
from autoblog.models.queue_topic import QueueTopic

logger = logging.getLogger(__name__)

TopicId = Union[str, uuid.UUID]


@dataclass
class ClaimResult:
    success: bool
    content_ref: Optional[str] = None
    error: Optional[str] = None


def _as_uuid(topic_id: TopicId) -> uuid.UUID:
    return topic_id if isinstance(topic_id, uuid.UUID) else uuid.UUID(str(topic_id))


class TopicQueue:
    """Queue repository over the topics table."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_attempts: Optional[int] = None,
        stale_lock_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[Settings] = None,
    ):
        settings = config or get_settings()

        self._session_factory = session_factory
        self.max_attempts = max_attempts or settings.queue_max_attempts
        self.stale_lock_seconds = stale_lock_seconds or settings.queue_stale_lock_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def enqueue(
        self,
        topic: str,
        keywords: Optional[str] = None,
        category_id: Optional[int] = None,
        source: str = "manual",
        priority: int = 0,
    ) -> uuid.UUID:
        topic = (topic or "").strip()
        if not topic:
            raise ValueError("Topic text is required")

        row = QueueTopic(
            topic=topic[:500],
            keywords=(keywords or "").strip() or None,
            category_id=category_id,
            source=source,
            priority=priority,
            created_at=self._clock(),
        )
        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
        logger.info("Topic queued: id=%s priority=%d source=%s", str(row.id)[:8], priority, source)
        return row.id

    async def enqueue_many(self, rows: list[dict], source: str = "import") -> int:
        """Bulk import. Rows without topic text are skipped. Returns the count added."""
        added = 0
        now = self._clock()
        async with self._session_factory() as db:
            for item in rows:
                topic = (item.get("topic") or "").strip()
                if not topic:
                    continue
                db.add(QueueTopic(
                    topic=topic[:500],
                    keywords=(item.get("keywords") or "").strip() or None,
                    category_id=item.get("category_id"),
                    source=item.get("source") or source,
                    priority=int(item.get("priority") or 0),
                    created_at=now,
                ))
                added += 1
            await db.commit()
        logger.info("Imported %d topics", added)
        return added

    async def _reclaim_stale(self, db) -> int:
        cutoff = self._clock() - timedelta(seconds=self.stale_lock_seconds)
        result = await db.execute(
            update(QueueTopic)
            .where(
                and_(
                    QueueTopic.status == "processing",
                    QueueTopic.locked_at.is_not(None),
                    QueueTopic.locked_at < cutoff,
                )
            )
            .values(status="pending", locked_at=None, claim_token=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def _claim_values(self) -> dict:
        return {"status": "processing", "locked_at": self._clock(), "claim_token": uuid.uuid4().hex}

    async def claim_next(self) -> Optional[QueueTopic]:
        """
        Claim the highest-priority, oldest pending topic.
        Returns the claimed row, or None when nothing is claimable or another
        claimer won the race for the same candidate.
        """
        async with self._session_factory() as db:
            reclaimed = await self._reclaim_stale(db)
            if reclaimed:
                logger.warning("Reset %d stale processing topic(s) to pending", reclaimed)
            await db.commit()

            candidate_id = (await db.execute(
                select(QueueTopic.id)
                .where(
                    and_(
                        QueueTopic.status == "pending",
                        QueueTopic.attempts < self.max_attempts,
                    )
                )
                .order_by(QueueTopic.priority.desc(), QueueTopic.created_at.asc())
                .limit(1)
            )).scalar()
            if candidate_id is None:
                return None

            result = await db.execute(
                update(QueueTopic)
                .where(
                    and_(
                        QueueTopic.id == candidate_id,
                        QueueTopic.status == "pending",
                    )
                )
                .values(**self._claim_values())
                .execution_options(synchronize_session=False)
            )
            await db.commit()

            if result.rowcount != 1:
                logger.info("Lost claim race for topic %s", str(candidate_id)[:8])
                return None

            topic = await db.get(QueueTopic, candidate_id, populate_existing=True)
            logger.info("Claimed topic %s (attempts=%d)", str(candidate_id)[:8], topic.attempts)
            return topic

    async def claim(self, topic_id: TopicId) -> Optional[QueueTopic]:
        """Claim one specific pending topic. None if it is missing or not claimable."""
        topic_uuid = _as_uuid(topic_id)
        async with self._session_factory() as db:
            result = await db.execute(
                update(QueueTopic)
                .where(
                    and_(
                        QueueTopic.id == topic_uuid,
                        QueueTopic.status == "pending",
                        QueueTopic.attempts < self.max_attempts,
                    )
                )
                .values(**self._claim_values())
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if result.rowcount != 1:
                return None
            return await db.get(QueueTopic, topic_uuid, populate_existing=True)

    async def release(
        self,
        topic_id: TopicId,
        result: ClaimResult,
        claim_token: Optional[str],
    ) -> Optional[QueueTopic]:
        """
        Record the outcome of a claim and clear its lock.

        Only the claim identified by claim_token can release the row. Returns
        None, changing nothing, when the topic is unknown or that claim no
        longer owns it (already released, or reclaimed as stale).
        """
        topic_uuid = _as_uuid(topic_id)
        if not claim_token:
            logger.warning("Release for topic %s without a claim token ignored", str(topic_uuid)[:8])
            return None

        owned = and_(
            QueueTopic.id == topic_uuid,
            QueueTopic.status == "processing",
            QueueTopic.claim_token == claim_token,
        )
        async with self._session_factory() as db:
            topic = (await db.execute(select(QueueTopic).where(owned))).scalar_one_or_none()
            if topic is None:
                logger.info("Topic %s is not held by this claim, release skipped", str(topic_uuid)[:8])
                return None

            values = {"locked_at": None, "claim_token": None}
            if result.success:
                values.update(
                    status="completed",
                    content_ref=result.content_ref,
                    processed_at=self._clock(),
                    last_error=None,
                )
            else:
                attempts = (topic.attempts or 0) + 1
                values.update(attempts=attempts, last_error=result.error or "Unknown error")
                if attempts >= self.max_attempts:
                    values.update(status="failed", processed_at=self._clock())
                else:
                    values["status"] = "pending"

            updated = await db.execute(
                update(QueueTopic)
                .where(owned)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if updated.rowcount != 1:
                logger.warning("Lost ownership of topic %s before release", str(topic_uuid)[:8])
                return None

            topic = await db.get(QueueTopic, topic_uuid, populate_existing=True)

        short_id = str(topic_uuid)[:8]
        if result.success:
            logger.info("Topic %s completed -> %s", short_id, result.content_ref)
        elif topic.status == "failed":
            logger.error(
                "Topic %s failed permanently after %d attempts: %s",
                short_id, topic.attempts, topic.last_error,
            )
        else:
            logger.warning(
                "Topic %s attempt %d/%d failed: %s",
                short_id, topic.attempts, self.max_attempts, topic.last_error,
            )
        return topic

    async def mark_completed(
        self,
        topic_id: TopicId,
        content_ref: str,
        claim_token: Optional[str],
    ) -> Optional[QueueTopic]:
        return await self.release(topic_id, ClaimResult(success=True, content_ref=content_ref), claim_token)

    async def pending_exists(self, topic: str) -> bool:
        async with self._session_factory() as db:
            found = (await db.execute(
                select(QueueTopic.id)
                .where(and_(QueueTopic.topic == topic.strip(), QueueTopic.status == "pending"))
                .limit(1)
            )).scalar()
        return found is not None

    async def get(self, topic_id: TopicId) -> Optional[QueueTopic]:
        async with self._session_factory() as db:
            return await db.get(QueueTopic, _as_uuid(topic_id))

    async def list_topics(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[QueueTopic], int]:
        query = select(QueueTopic)
        count_query = select(func.count()).select_from(QueueTopic)
        if status:
            query = query.where(QueueTopic.status == status)
            count_query = count_query.where(QueueTopic.status == status)

        async with self._session_factory() as db:
            rows = (await db.execute(
                query.order_by(QueueTopic.priority.desc(), QueueTopic.created_at.asc())
                .limit(limit).offset(offset)
            )).scalars().all()
            total = (await db.execute(count_query)).scalar() or 0
        return list(rows), int(total)

    async def delete(self, topic_id: TopicId) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(QueueTopic).where(QueueTopic.id == _as_uuid(topic_id))
            )
            await db.commit()
        return bool(result.rowcount)

    async def stats(self) -> dict:
        async with self._session_factory() as db:
            rows = (await db.execute(
                select(QueueTopic.status, func.count()).group_by(QueueTopic.status)
            )).all()
        counts = {status: int(count) for status, count in rows}
        stats = {key: counts.get(key, 0) for key in ("pending", "processing", "completed", "failed")}
        stats["total"] = sum(counts.values())
        return stats
