import time
from typing import Callable, Optional


class TokenBucket:
    """Per-session token bucket; ``rate <= 0`` disables limiting."""

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate = rate
        self.capacity = max(1, burst)
        self._clock = clock
        self._tokens = float(self.capacity)
        self._ts: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.rate > 0

    def allow(self) -> tuple[bool, float]:
        """Take one token; returns (allowed, tokens_remaining)."""
        if not self.enabled:
            return True, float(self.capacity)
        now = self._clock()
        if self._ts is not None:
            delta = now - self._ts
            self._tokens = min(self.capacity, self._tokens + delta * self.rate)
        self._ts = now
        if self._tokens >= 1:
            self._tokens -= 1
            return True, self._tokens
        return False, self._tokens
