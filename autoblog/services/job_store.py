"""
Generation job state in a key-value store with TTL (Redis in production,
an in-memory fake in tests).
Each job is one JSON document whose TTL is refreshed on every save, so
abandoned jobs expire on their own.
"""
import logging
from typing import Optional

from autoblog.config import Settings, get_settings
from autoblog.schemas.job import GenerationJob
from autoblog.utils.redis_client import get_redis, make_key

logger = logging.getLogger(__name__)


def job_key(job_id: str) -> str:
    return make_key("job", job_id)


class JobStore:
    def __init__(self, redis=None, config: Optional[Settings] = None):
        self._redis = redis
        self.ttl_seconds = (config or get_settings()).job_ttl_seconds

    async def _client(self):
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def save(self, job: GenerationJob) -> None:
        redis = await self._client()
        await redis.set(job_key(job.job_id), job.model_dump_json(), ex=self.ttl_seconds)

    async def load(self, job_id: str) -> Optional[GenerationJob]:
        redis = await self._client()
        raw = await redis.get(job_key(job_id))
        if raw is None:
            return None
        return GenerationJob.model_validate_json(raw)

    async def delete(self, job_id: str) -> None:
        redis = await self._client()
        await redis.delete(job_key(job_id))
