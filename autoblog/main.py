"""
Autoblog - AI blog post generation service.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from autoblog.config import get_settings
from autoblog.api.router import api_router
from autoblog.api.errors import autoblog_error_handler, value_error_handler
from autoblog.utils.errors import AutoblogError
from autoblog.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("autoblog")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Autoblog starting up (env=%s)", settings.app_env)

    if not settings.encryption_key:
        logger.warning(
            "ENCRYPTION_KEY not set - the provider API key will be stored unencrypted. "
            "Generate a Fernet key for production."
        )

    worker_tasks: list[asyncio.Task] = []

    if settings.scheduler_enabled:
        from autoblog.api.deps import build_scheduler, build_trends_service
        from autoblog.workers.scheduler import run_scheduler_worker
        worker_tasks.append(asyncio.create_task(
            run_scheduler_worker(build_scheduler(settings), trends=build_trends_service(settings))
        ))
        logger.info("Scheduler worker started")
    else:
        logger.info("Scheduler worker disabled (SCHEDULER_ENABLED=false)")

    yield

    logger.info("Autoblog shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)
    logger.info("Autoblog shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # JSON lines everywhere but local development
    configure_structured_logging(settings.log_level, json_output=settings.app_env != "development")

    application = FastAPI(
        title="Autoblog",
        description="AI blog post generation with a scheduled topic queue",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(CorrelationIdMiddleware)
    application.add_exception_handler(AutoblogError, autoblog_error_handler)
    application.add_exception_handler(ValueError, value_error_handler)

    application.include_router(api_router)

    return application


app = create_app()
