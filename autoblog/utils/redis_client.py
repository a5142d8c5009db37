"""
Shared async Redis connection (lazily initialized).
Backs job state, scheduler markers, locks, alert cooldowns and heartbeats.
"""
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX = "autoblog"

_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from autoblog.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_key(*parts: str) -> str:
    """Build a namespaced Redis key, e.g. make_key("job", job_id)."""
    return ":".join((KEY_PREFIX,) + tuple(str(p) for p in parts))
