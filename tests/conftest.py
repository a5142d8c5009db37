"""
Test configuration and fixtures.
Uses SQLite (via aiosqlite) for the database and in-memory fakes for Redis,
the AI client and the pipeline's collaborators. No test talks to a real
provider or Redis server.
"""
import fnmatch
import pytest
from typing import Any, Optional
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from autoblog.config import Settings
from autoblog.database import Base
from autoblog.integrations.base import (
    ContentStore,
    CostLedger,
    MediaStore,
    SettingsProvider,
)
from autoblog.services.job_store import JobStore
from autoblog.services.pipeline import GenerationPipeline
from autoblog.services.settings_store import SETTING_DEFINITIONS, cast_setting
import autoblog.models  # noqa: F401  registers every table on Base.metadata


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


def make_config(**overrides) -> Settings:
    values = {
        "openai_api_key": "sk-test",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "redis_url": "redis://localhost:6379/15",
        "scheduler_timezone": "UTC",
        "encryption_key": "",
        "alert_webhook_url": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def text_result(content: str, prompt_tokens=100, completion_tokens=50, cost_usd=0.001, model="gpt-4o-mini"):
    """Shape returned by AIClient.generate_text."""
    return {
        "content": content,
        "model": model,
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
        "cost_usd": cost_usd,
        "finish_reason": "stop",
        "latency_ms": 10,
    }


OUTLINE_TEXT = (
    "**Title:** Growing Tomatoes Indoors All Year Round\n\n"
    "## Introduction\n- Why grow indoors\n\n"
    "## Choosing Varieties\n- Dwarf and cherry types\n\n"
    "## Conclusion\n- Start small"
)

ARTICLE_HTML = (
    "<h2>Why Grow Indoors</h2>\n"
    "<p>Indoor tomatoes give you fresh fruit through the winter months, and with "
    "<strong>grow lights</strong> and a sunny window you can keep plants productive "
    "long after the garden has been put to bed for the season.</p>\n"
    "<h2>Choosing Varieties</h2>\n"
    "<ul><li>Cherry tomatoes</li><li>Dwarf determinate types</li></ul>\n"
    "<p>Compact plants stay manageable in containers and ripen quickly under lights.</p>"
)

HUMANIZED_HTML = ARTICLE_HTML.replace("Indoor tomatoes give", "Homegrown indoor tomatoes give")

SEO_JSON = (
    '{"meta_description": "Grow tomatoes indoors all year with grow lights and compact varieties.", '
    '"focus_keyword": "indoor tomatoes", "seo_title": "Indoor Tomatoes: A Year-Round Guide"}'
)


def full_job_replies() -> list:
    """Provider replies for outline, content, humanize and seo, $0.001 each."""
    return [
        text_result(OUTLINE_TEXT),
        text_result(ARTICLE_HTML),
        text_result(HUMANIZED_HTML),
        text_result(SEO_JSON),
    ]


class FakeRedis:
    """Just enough of redis.asyncio.Redis for markers, job state and heartbeats."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def eval(self, script, numkeys, key, token):
        # Compare-and-delete release script
        if self.store.get(key) == token:
            return await self.delete(key)
        return 0

    async def expire(self, key, seconds):
        if key in self.store:
            self.ttls[key] = seconds
            return True
        return False

    async def ping(self):
        return True

    def keys_matching(self, pattern: str) -> list[str]:
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]


class FakeAIClient:
    """Stands in for AIClient. Replies are consumed in order; exceptions are raised."""

    def __init__(self, replies=None, image=None, image_error=None):
        self.replies = list(replies or [])
        self.calls: list[dict] = []
        self.image = image
        self.image_error = image_error
        self.image_calls: list[dict] = []

    async def generate_text(self, prompt, system_prompt="", model=None, max_tokens=2000, temperature=0.7):
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if not self.replies:
            raise AssertionError("Unexpected generate_text call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_image(self, prompt, model="dall-e-3", size="1792x1024", quality="standard", style=None):
        self.image_calls.append({"prompt": prompt, "model": model, "size": size, "quality": quality})
        if self.image_error is not None:
            raise self.image_error
        return self.image or {
            "url": "https://images.example.com/generated.png",
            "revised_prompt": prompt,
            "model": model,
            "size": size,
            "cost_usd": 0.08,
            "latency_ms": 10,
        }


class InMemorySettings(SettingsProvider):
    def __init__(self, **overrides):
        self.values = {key: cast_setting(key, None) for key in SETTING_DEFINITIONS}
        self.values.update(overrides)

    async def get(self, key: str) -> Any:
        return self.values[key]

    async def set(self, key: str, value: Any) -> Any:
        self.values[key] = cast_setting(key, value)
        return self.values[key]

    async def get_all(self) -> dict:
        return dict(self.values)


class InMemoryContentStore(ContentStore):
    def __init__(self, fail_create=False, fail_tags=False):
        self.posts: dict[str, dict] = {}
        self.fail_create = fail_create
        self.fail_tags = fail_tags
        self.deleted: list[str] = []
        self._next_id = 1

    async def create(self, title, body, status, author_id=None, category_id=None, metadata=None, tags=None):
        if self.fail_create:
            raise RuntimeError("content store unavailable")
        ref = f"post-{self._next_id}"
        self._next_id += 1
        self.posts[ref] = {
            "id": ref,
            "title": title,
            "body": body,
            "status": status,
            "author_id": author_id,
            "category_id": category_id,
            "tags": list(tags or []),
            "meta": dict(metadata or {}),
            "featured_image_id": None,
        }
        return ref

    async def update_meta(self, content_ref, meta):
        self.posts[content_ref]["meta"].update(meta)

    async def set_tags(self, content_ref, tags):
        if self.fail_tags:
            raise RuntimeError("tag write failed")
        self.posts[content_ref]["tags"] = list(tags)

    async def set_featured_image(self, content_ref, asset_ref):
        self.posts[content_ref]["featured_image_id"] = asset_ref

    async def delete(self, content_ref):
        self.posts.pop(content_ref, None)
        self.deleted.append(content_ref)

    async def get(self, content_ref):
        return self.posts.get(content_ref)

    async def recent(self, status="publish", limit=10):
        matching = [post for post in self.posts.values() if post["status"] == status]
        return list(reversed(matching))[:limit]


class InMemoryMediaStore(MediaStore):
    def __init__(self, fail=False):
        self.fail = fail
        self.fetched: list[dict] = []

    async def fetch_and_attach(self, url, filename, content_ref, alt_text=""):
        if self.fail:
            raise RuntimeError("download failed")
        self.fetched.append({"url": url, "filename": filename, "content_ref": content_ref, "alt_text": alt_text})
        return f"asset-{len(self.fetched)}"


class InMemoryLedger(CostLedger):
    def __init__(self, can_generate=True, budget_ok=True):
        self.entries: list[dict] = []
        self.can_generate = can_generate
        self.budget_ok = budget_ok

    async def append(self, entry):
        self.entries.append(dict(entry))

    async def monthly_cost(self):
        return sum(e["cost_usd"] + e["image_cost_usd"] for e in self.entries if e["status"] == "success")

    async def posts_today(self):
        return len([e for e in self.entries if e["status"] == "success"])

    async def can_generate_today(self):
        return self.can_generate

    async def within_budget(self):
        return self.budget_ok


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite so independent sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'autoblog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def mock_alert():
    """Mock for send_alert so budget checks make no webhook or Redis calls."""
    with patch("autoblog.services.cost_tracker.send_alert", new_callable=AsyncMock) as mock:
        mock.return_value = True
        yield mock


@pytest.fixture
def make_pipeline(config, fake_redis):
    """Build a pipeline over in-memory collaborators. Returns (pipeline, parts)."""

    def _make(replies=None, settings=None, content_store=None, ledger=None, media_store=None,
              queue=None, ai_client=None, **ai_kwargs):
        parts = {
            "settings": settings or InMemorySettings(),
            "content_store": content_store or InMemoryContentStore(),
            "ledger": ledger or InMemoryLedger(),
            "media_store": media_store or InMemoryMediaStore(),
            "ai": ai_client or FakeAIClient(replies, **ai_kwargs),
            "redis": fake_redis,
        }
        pipeline = GenerationPipeline(
            settings=parts["settings"],
            content_store=parts["content_store"],
            cost_ledger=parts["ledger"],
            job_store=JobStore(redis=fake_redis, config=config),
            queue=queue,
            media_store=parts["media_store"],
            ai_client=parts["ai"],
            redis=fake_redis,
            config=config,
        )
        return pipeline, parts

    return _make
