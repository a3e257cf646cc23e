"""Redis Service - Short-lived locks around match formation."""

import logging
import uuid
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from saferide.config import settings

logger = logging.getLogger(__name__)


# =============================================================================
# Redis Key Naming Convention
# =============================================================================
#
# All keys are namespaced under "saferide:" prefix.
#
# Key patterns:
# - saferide:lock:request:{id}  - String holding the lock token of the
#                                 formation currently writing this request
#
# TTL rules:
# - Request locks: REQUEST_LOCK_TTL_SECONDS (15s). A crashed writer releases
#   its locks by expiry.
#
# =============================================================================


class RedisKeys:
    """Redis key builders."""

    @staticmethod
    def request_lock(request_id: str) -> str:
        return f"saferide:lock:request:{request_id}"


# Deletes KEYS[1] only while it still holds ARGV[1], the caller's token
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisLockService:
    """
    Per-request locks for match formation.

    Locks are taken in sorted id order so that two formations over
    overlapping request sets cannot deadlock. With no Redis client
    configured, locking is a no-op and the store-level compare-and-set
    flips remain the only guard.
    """

    def __init__(self, client: Optional[redis.Redis], ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_ms = (ttl_seconds or settings.request_lock_ttl_seconds) * 1000

    async def acquire_request_locks(self, request_ids: List[str]) -> Optional[str]:
        """
        Lock every request id. Returns the lock token, or None when any
        request is already locked (partial locks are released).
        """
        token = str(uuid.uuid4())
        if self.client is None:
            return token

        acquired: List[str] = []
        try:
            for request_id in sorted(set(request_ids)):
                key = RedisKeys.request_lock(request_id)
                # SET NX PX: atomic claim with expiry
                was_set = await self.client.set(key, token, nx=True, px=self.ttl_ms)
                if not was_set:
                    logger.info(f"Request {request_id} is locked by another formation")
                    await self._release(acquired, token)
                    return None
                acquired.append(request_id)
        except RedisError as e:
            await self._release(acquired, token)
            logger.warning(f"Redis lock acquisition failed, continuing without locks: {e}")
            return token
        return token

    async def release_request_locks(self, request_ids: List[str], token: str) -> None:
        if self.client is None:
            return
        await self._release(request_ids, token)

    async def _release(self, request_ids: List[str], token: str) -> None:
        for request_id in request_ids:
            key = RedisKeys.request_lock(request_id)
            try:
                await self.client.eval(_RELEASE_LOCK_SCRIPT, 1, key, token)
            except RedisError as e:
                logger.warning(f"Failed to release lock {key}: {e}")
