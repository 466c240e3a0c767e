# =============================================================================
# Rate Limiter — Redis-Based Per-Application Sliding Window
# =============================================================================
#
# Sliding window counter using Redis sorted sets (ZSET). Each request adds an
# entry scored by its timestamp; on each check, entries older than the window
# are pruned and the remaining count is compared against the limit.
#
# DESIGN DECISION: Graceful degradation. If Redis is unavailable, the
# request is allowed through and a warning is logged. Ingestion availability
# does not depend on Redis.
#
# Uses Redis db 2 (db 0/1 reserved for Celery).
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid

from fastapi import HTTPException

from loghog.config import settings

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

# Lazy Redis connection
_redis_client = None


def _get_rate_limit_redis():
    """Lazily create and cache the async Redis client for rate limiting."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        _redis_client = aioredis.from_url(
            settings.rate_limit_redis_url,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )
    return _redis_client


async def check_rate_limit(app_id: str | None) -> None:
    """
    Check whether the application has exceeded its request budget.

    Raises:
        HTTPException 429: Rate limit exceeded (includes Retry-After header).

    No-op when:
    - Rate limiting is disabled in settings
    - app_id is None
    - Redis is unavailable (graceful degradation)
    """
    if not settings.rate_limit_enabled or app_id is None:
        return

    limit = settings.rate_limit_rpm
    redis_key = f"ratelimit:app:{app_id}"

    try:
        r = _get_rate_limit_redis()
        now = time.time()
        window_start = now - WINDOW_SECONDS

        pipe = r.pipeline()
        pipe.zremrangebyscore(redis_key, 0, window_start)
        pipe.zcard(redis_key)
        # Unique member so concurrent requests in the same instant all count
        pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.expire(redis_key, WINDOW_SECONDS + 10)
        results = await pipe.execute()

        current_count = results[1]  # zcard result

        if current_count >= limit:
            logger.info("Rate limit hit for app_id=%s (%d/%d)", app_id, current_count, limit)
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. "
                f"Limit: {limit} requests/minute.",
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

    except HTTPException:
        raise
    except Exception as e:
        logger.warning(
            "Rate limiter unavailable (Redis error): %s. "
            "Allowing request through.",
            e,
        )
