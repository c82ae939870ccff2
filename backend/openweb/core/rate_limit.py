from __future__ import annotations

import time
import math
import logging
from collections import defaultdict, deque
from typing import Callable, DefaultDict, Deque, Hashable, Iterable, Sequence

from openweb.core.errors import RateLimited
from openweb.core.redis_client import get_redis

WindowBucket = Deque[float]

logger = logging.getLogger(__name__)


def _prune(bucket: WindowBucket, now: float, window_seconds: int) -> None:
    while bucket and now - bucket[0] >= window_seconds:
        bucket.popleft()


def _enforce_limit(
    buckets: DefaultDict[Hashable, WindowBucket],
    identifiers: Sequence[Hashable],
    limit: int,
    window_seconds: int,
    now: float,
) -> None:
    # Every identifier is checked before any is charged.
    retry_after_seconds = 0
    for ident in identifiers:
        bucket = buckets[ident]
        _prune(bucket, now, window_seconds)
        if len(bucket) >= limit:
            wait = 1
            if bucket:
                wait = max(1, int(math.ceil(bucket[0] + window_seconds - now)))
            retry_after_seconds = max(retry_after_seconds, wait)
    if retry_after_seconds:
        raise RateLimited(retry_after=retry_after_seconds)
    for ident in identifiers:
        buckets[ident].append(now)


async def _enforce_limit_redis(
    *,
    key: Hashable,
    identifiers: Sequence[Hashable],
    limit: int,
    window_seconds: int,
    now: float,
) -> bool:
    client = get_redis()
    if client is None:
        return False
    try:
        now_int = int(now)
        window = now_int // max(1, int(window_seconds))
        redis_keys = [f"rate_limit:{key}:{ident}:{window}" for ident in identifiers]
        counted: list[str] = []
        over_limit = False
        for redis_key in redis_keys:
            count = await client.incr(redis_key)
            counted.append(redis_key)
            if count == 1:
                await client.expire(redis_key, int(window_seconds))
            if int(count) > int(limit):
                over_limit = True
        if over_limit:
            # A rejected request gives its slot back on every key.
            for redis_key in counted:
                await client.decr(redis_key)
            retry_after_seconds = max(1, int(window_seconds) - (now_int % int(window_seconds or 1)))
            raise RateLimited(retry_after=retry_after_seconds)
        return True
    except RateLimited:
        raise
    except Exception as exc:
        logger.warning("redis_rate_limit_failed", extra={"error": str(exc)})
        return False


class SlidingWindowLimiter:
    """
    Per-identifier rate limiter.

    Counts live in Redis when REDIS_URL is configured (fixed window shared by every
    worker) and otherwise in a per-process sliding window.

    Args:
        key: namespace for the buckets (e.g., "subscribe").
        limit_fn: returns the max hits allowed in the window.
        window_fn: returns the window length in seconds.
    """

    def __init__(
        self,
        key: Hashable,
        limit_fn: Callable[[], int],
        window_fn: Callable[[], int],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key = key
        self.limit_fn = limit_fn
        self.window_fn = window_fn
        self.clock = clock
        self.buckets: DefaultDict[Hashable, WindowBucket] = defaultdict(deque)

    async def hit(self, *identifiers: Hashable) -> None:
        """
        Count one hit against every identifier, or against none of them.

        Raises RateLimited when any identifier is already at the limit.
        """
        limit = int(self.limit_fn())
        window_seconds = max(1, int(self.window_fn()))
        if limit <= 0 or not identifiers:
            return
        now = self.clock()
        enforced = await _enforce_limit_redis(
            key=self.key, identifiers=identifiers, limit=limit, window_seconds=window_seconds, now=now
        )
        if not enforced:
            _enforce_limit(self.buckets, identifiers, limit, window_seconds, now)


def reset_buckets(limiters: Iterable[SlidingWindowLimiter]) -> None:
    """Helper for tests to clear limiter state."""
    for limiter in limiters:
        limiter.buckets.clear()
