"""
FastAPI dependencies that wire the components together.

Every component takes its collaborators through its constructor; this is
the one place the production implementations are chosen. Tests replace
these through app.dependency_overrides.
"""
from fastapi import Depends

from autoblog.config import Settings, get_settings
from autoblog.database import get_session_factory
from autoblog.integrations.database_store import DatabaseContentStore
from autoblog.integrations.local_media import LocalMediaStore
from autoblog.services.cost_tracker import DatabaseCostLedger
from autoblog.services.job_store import JobStore
from autoblog.services.pipeline import GenerationPipeline
from autoblog.services.queue import TopicQueue
from autoblog.services.settings_store import DatabaseSettingsProvider
from autoblog.services.style_analyzer import StyleAnalyzer
from autoblog.services.trends import TrendsService
from autoblog.workers.scheduler import Scheduler


def get_config() -> Settings:
    return get_settings()


def get_settings_provider() -> DatabaseSettingsProvider:
    return DatabaseSettingsProvider(get_session_factory())


def get_cost_ledger(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    config: Settings = Depends(get_config),
) -> DatabaseCostLedger:
    return DatabaseCostLedger(get_session_factory(), settings, config=config)


def get_topic_queue(config: Settings = Depends(get_config)) -> TopicQueue:
    return TopicQueue(get_session_factory(), config=config)


def build_pipeline(
    settings: DatabaseSettingsProvider,
    ledger: DatabaseCostLedger,
    queue: TopicQueue,
    config: Settings,
) -> GenerationPipeline:
    session_factory = get_session_factory()
    content_store = DatabaseContentStore(session_factory)
    return GenerationPipeline(
        settings=settings,
        content_store=content_store,
        cost_ledger=ledger,
        job_store=JobStore(config=config),
        queue=queue,
        media_store=LocalMediaStore(session_factory, config=config),
        config=config,
    )


def get_pipeline(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    ledger: DatabaseCostLedger = Depends(get_cost_ledger),
    queue: TopicQueue = Depends(get_topic_queue),
    config: Settings = Depends(get_config),
) -> GenerationPipeline:
    return build_pipeline(settings, ledger, queue, config)


def build_scheduler(config: Settings = None) -> Scheduler:
    """Fully wired scheduler, for the worker started at app startup."""
    config = config or get_settings()
    settings = get_settings_provider()
    ledger = DatabaseCostLedger(get_session_factory(), settings, config=config)
    queue = TopicQueue(get_session_factory(), config=config)
    return Scheduler(
        pipeline=build_pipeline(settings, ledger, queue, config),
        queue=queue,
        settings=settings,
        cost_ledger=ledger,
        config=config,
    )


def build_trends_service(config: Settings = None) -> TrendsService:
    """TrendsService for the background worker, sharing one pipeline's AI client."""
    config = config or get_settings()
    settings = get_settings_provider()
    ledger = DatabaseCostLedger(get_session_factory(), settings, config=config)
    queue = TopicQueue(get_session_factory(), config=config)
    pipeline = build_pipeline(settings, ledger, queue, config)
    return TrendsService(settings, queue, ai_client_factory=pipeline.get_ai_client, config=config)


def get_scheduler(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    ledger: DatabaseCostLedger = Depends(get_cost_ledger),
    queue: TopicQueue = Depends(get_topic_queue),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    config: Settings = Depends(get_config),
) -> Scheduler:
    return Scheduler(
        pipeline=pipeline,
        queue=queue,
        settings=settings,
        cost_ledger=ledger,
        config=config,
    )


def get_trends_service(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    queue: TopicQueue = Depends(get_topic_queue),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    config: Settings = Depends(get_config),
) -> TrendsService:
    return TrendsService(settings, queue, ai_client_factory=pipeline.get_ai_client, config=config)


def get_style_analyzer(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> StyleAnalyzer:
    return StyleAnalyzer(
        DatabaseContentStore(get_session_factory()),
        settings,
        ai_client_factory=pipeline.get_ai_client,
    )
