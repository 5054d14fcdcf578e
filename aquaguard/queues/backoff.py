"""Exponential backoff with jitter for consumer reconnect loops."""

import random
from dataclasses import dataclass, field


@dataclass
class ExponentialBackoff:
    """
    Delay for the n-th consecutive failure: ``min(base * multiplier**n, max_delay)``
    scaled by a random factor in ``[1 - jitter_range, 1 + jitter_range]``.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0)
        while True:
            try:
                await read()
                backoff.reset()
            except RedisError:
                await asyncio.sleep(backoff.next_delay())
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter_range: float = 0.5
    _attempt: int = field(default=0, init=False, repr=False)

    @property
    def attempt(self) -> int:
        """Consecutive failures since the last reset."""
        return self._attempt

    def next_delay(self) -> float:
        ceiling = min(self.base_delay * self.multiplier**self._attempt, self.max_delay)
        self._attempt += 1
        factor = 1.0 + random.uniform(-self.jitter_range, self.jitter_range)
        return max(0.0, ceiling * factor)

    def reset(self) -> None:
        self._attempt = 0
