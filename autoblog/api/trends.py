"""
Trending topics API - browse Google Trends searches and queue them as topics.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from autoblog.api.deps import get_trends_service
from autoblog.schemas.api_requests import TrendsEnqueueRequest
from autoblog.services.trends import COUNTRIES, TrendsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/trends", tags=["trends"])


@router.get("")
async def list_trends(
    country: Optional[str] = Query(None),
    refresh: bool = Query(False),
    categories: Optional[str] = Query(None, description="Comma-separated category names to filter by"),
    trends: TrendsService = Depends(get_trends_service),
):
    topics = await trends.fetch(country, force_refresh=refresh)
    wanted = [name.strip() for name in (categories or "").split(",") if name.strip()]
    if wanted:
        topics = await trends.filter_by_categories(topics, wanted)
    return {"success": True, "data": topics, "total": len(topics)}


@router.get("/countries")
async def list_countries():
    return {"success": True, "data": COUNTRIES}


@router.post("/enqueue")
async def enqueue_trends(
    payload: TrendsEnqueueRequest,
    trends: TrendsService = Depends(get_trends_service),
):
    if payload.titles:
        topics = payload.titles
    else:
        topics = (await trends.fetch(payload.country))[:payload.limit]

    added = await trends.add_to_queue(topics, category_id=payload.category_id)
    logger.info("Queued %d of %d trending topics", added, len(topics))
    return {"success": True, "data": {"added": added, "requested": len(topics)}}


@router.delete("/cache")
async def clear_trends_cache(
    country: Optional[str] = Query(None),
    trends: TrendsService = Depends(get_trends_service),
):
    await trends.clear_cache(country)
    return {"success": True}
