"""
Topic queue API - CRUD, bulk import, stats and on-demand generation.
"""
import csv
import io
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from autoblog.api.deps import get_pipeline, get_topic_queue
from autoblog.models.queue_topic import QueueTopic
from autoblog.schemas.api_requests import (
    TopicCreateRequest,
    TopicGenerateRequest,
    TopicImportRequest,
)
from autoblog.schemas.job import JobOptions
from autoblog.services.pipeline import GenerationPipeline
from autoblog.services.queue import ClaimResult, TopicQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/topics", tags=["topics"])

TOPIC_STATUSES = ("pending", "processing", "completed", "failed")


def _serialize_topic(topic: QueueTopic) -> dict:
    return {
        "id": str(topic.id),
        "topic": topic.topic,
        "keywords": topic.keywords,
        "category_id": topic.category_id,
        "source": topic.source,
        "status": topic.status,
        "priority": topic.priority,
        "attempts": topic.attempts,
        "last_error": topic.last_error,
        "content_ref": topic.content_ref,
        "created_at": topic.created_at.isoformat() if topic.created_at else None,
        "processed_at": topic.processed_at.isoformat() if topic.processed_at else None,
    }


def parse_topics_csv(text: str) -> list[dict]:
    """Parse CSV with a header row. A file without a 'topic' column is read as one topic per line."""
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return []
    header = [cell.strip().lower() for cell in next(csv.reader([lines[0]]))]
    if "topic" not in header:
        return [{"topic": row[0]} for row in csv.reader(lines) if row and row[0].strip()]

    rows = []
    for row in csv.DictReader(io.StringIO("\n".join(lines))):
        row = {(key or "").strip().lower(): (value or "").strip() for key, value in row.items()}
        category = row.get("category_id")
        priority = row.get("priority")
        rows.append({
            "topic": row.get("topic"),
            "keywords": row.get("keywords"),
            "category_id": int(category) if category and category.isdigit() else None,
            "priority": int(priority) if priority and priority.lstrip("-").isdigit() else 0,
        })
    return rows


@router.get("")
async def list_topics(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    queue: TopicQueue = Depends(get_topic_queue),
):
    if status and status not in TOPIC_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {TOPIC_STATUSES}")
    topics, total = await queue.list_topics(status=status, limit=limit, offset=offset)
    return {
        "success": True,
        "data": [_serialize_topic(t) for t in topics],
        "meta": {"total": total, "limit": limit, "offset": offset},
    }


@router.post("")
async def create_topic(
    payload: TopicCreateRequest,
    queue: TopicQueue = Depends(get_topic_queue),
):
    topic_id = await queue.enqueue(
        payload.topic,
        keywords=payload.keywords,
        category_id=payload.category_id,
        priority=payload.priority,
    )
    return {"success": True, "data": _serialize_topic(await queue.get(topic_id))}


@router.post("/import")
async def import_topics(
    payload: TopicImportRequest,
    queue: TopicQueue = Depends(get_topic_queue),
):
    rows = [item.model_dump() for item in payload.topics]
    if payload.csv:
        rows.extend(parse_topics_csv(payload.csv))
    added = await queue.enqueue_many(rows)
    return {"success": True, "data": {"imported": added, "skipped": len(rows) - added}}


@router.get("/stats")
async def topic_stats(queue: TopicQueue = Depends(get_topic_queue)):
    return {"success": True, "data": await queue.stats()}


@router.get("/{topic_id}")
async def get_topic(
    topic_id: str,
    queue: TopicQueue = Depends(get_topic_queue),
):
    topic = await queue.get(topic_id)
    if topic is None:
        raise HTTPException(status_code=404, detail="Topic not found")
    return {"success": True, "data": _serialize_topic(topic)}


@router.delete("/{topic_id}")
async def delete_topic(
    topic_id: str,
    queue: TopicQueue = Depends(get_topic_queue),
):
    if not await queue.delete(topic_id):
        raise HTTPException(status_code=404, detail="Topic not found")
    return {"success": True}


@router.post("/{topic_id}/generate")
async def generate_from_topic(
    topic_id: str,
    payload: Optional[TopicGenerateRequest] = None,
    queue: TopicQueue = Depends(get_topic_queue),
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Claim one pending topic and generate it now."""
    payload = payload or TopicGenerateRequest()
    topic = await queue.claim(topic_id)
    if topic is None:
        existing = await queue.get(topic_id)
        if existing is None:
            raise HTTPException(status_code=404, detail="Topic not found")
        raise HTTPException(status_code=409, detail=f"Topic is {existing.status}, not claimable")

    options = JobOptions(
        keywords=topic.keywords or "",
        category_id=topic.category_id,
        publish=payload.publish,
        generate_image=payload.generate_image,
        source="queue",
        queue_topic_id=str(topic.id),
        queue_claim_token=topic.claim_token,
    )
    try:
        job_id = await pipeline.create_job(topic.topic, options)
        job = await pipeline.run_to_completion(job_id)
    except Exception as e:
        # No-op when the pipeline's failure path already released this claim
        await queue.release(topic.id, ClaimResult(success=False, error=str(e)), topic.claim_token)
        raise

    return {"success": True, "data": job.public_dict()}
