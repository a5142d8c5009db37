"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from autoblog.api.health import router as health_router
from autoblog.api.generate import router as generate_router
from autoblog.api.topics import router as topics_router
from autoblog.api.scheduler import router as scheduler_router
from autoblog.api.settings import router as settings_router
from autoblog.api.stats import router as stats_router
from autoblog.api.trends import router as trends_router
from autoblog.api.style import router as style_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(generate_router)
api_router.include_router(topics_router)
api_router.include_router(scheduler_router)
api_router.include_router(settings_router)
api_router.include_router(stats_router)
api_router.include_router(trends_router)
api_router.include_router(style_router)
