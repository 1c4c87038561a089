import asyncio
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int = 0
    retry_after: int = 0


class InMemoryRateLimiter:
    """Sliding-window request counter keyed by caller and path. Per process only."""

    def __init__(self) -> None:
        self.requests: dict[str, deque[float]] = defaultdict(deque)
        self.lock = asyncio.Lock()

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        async with self.lock:
            now = time.monotonic()
            window_start = now - window_seconds

            request_times = self.requests[key]
            while request_times and request_times[0] <= window_start:
                request_times.popleft()

            if len(request_times) >= limit:
                retry_after = int(request_times[0] + window_seconds - now) + 1
                logger.warning("Rate limit hit for %s (retry in %ss)", key, retry_after)
                return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

            request_times.append(now)
            return RateLimitResult(allowed=True, remaining=limit - len(request_times))

    def reset(self) -> None:
        self.requests.clear()


mutation_limiter = InMemoryRateLimiter()
