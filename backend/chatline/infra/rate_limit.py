"""Simple Redis-backed rate limiting utilities."""

from __future__ import annotations

import logging
import math
import time
from typing import Optional

from redis.exceptions import RedisError

from chatline.infra.redis import redis_client

logger = logging.getLogger(__name__)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget.

	Redis outages fail open: realtime traffic keeps flowing without budgets.
	"""

	if limit <= 0:
		return False
	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.incr(key)
			pipe.expire(key, window)
			count, _ = await pipe.execute()
	except (RedisError, OSError):
		logger.warning("rate limit check failed kind=%s actor=%s", kind, actor_id, exc_info=True)
		return True
	return int(count) <= limit
