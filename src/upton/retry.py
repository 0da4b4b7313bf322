from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule for timed out fetches.

    ``max_attempts=None`` retries until a fetch stops timing out. Delays grow
    as ``delay * backoff ** n``, capped at ``max_delay`` when given.
    """

    max_attempts: Optional[int] = None
    delay: float = 0.0
    backoff: float = 1.0
    max_delay: Optional[float] = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0 or self.backoff < 1:
            raise ValueError("delay must be >= 0 and backoff >= 1")

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt >= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after ``attempt`` (1-based) timed out."""
        wait = self.delay * self.backoff ** (attempt - 1)
        if self.max_delay is not None:
            wait = min(wait, self.max_delay)
        return wait

    def wait(self, attempt: int) -> None:
        wait = self.delay_for(attempt)
        if wait > 0:
            self.sleep(wait)
