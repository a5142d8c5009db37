"""
Redis markers - process-wide mutual exclusion for scheduled generation,
rescheduling and per-job step processing.
Uses Redis SET NX with TTL so a crashed holder never blocks forever.
"""
import logging
import uuid
from typing import Optional

from autoblog.utils.redis_client import make_key

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def marker_key(name: str) -> str:
    return make_key("lock", name)


async def acquire_marker(redis, name: str, ttl: int) -> Optional[str]:
    """
    Try once to set the marker. Returns the owner token on success, None if
    someone else holds it. Never waits: callers that lose simply skip.
    """
    token = uuid.uuid4().hex
    was_set = await redis.set(marker_key(name), token, nx=True, ex=ttl)
    return token if was_set else None


async def release_marker(redis, name: str, token: str) -> bool:
    """Release the marker only if we still own it (compare-and-delete)."""
    try:
        deleted = await redis.eval(_RELEASE_SCRIPT, 1, marker_key(name), token)
        return bool(deleted)
    except Exception as e:
        # TTL expiry frees the marker eventually
        logger.warning("Marker release failed for %s: %s", name, str(e))
        return False

