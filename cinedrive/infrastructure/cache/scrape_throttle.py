import math
import threading
import time
from typing import Callable, Optional

from cinedrive.application.models import ThrottleDecision


class ScrapeThrottle:
    """Process-wide gate enforcing a minimum delay between upstream scrapes.

    One instance is shared by request-triggered refreshes and the
    background scheduler. Granting and stamping happen under one lock so
    two callers can never both pass inside the same delay window.
    """

    def __init__(self, min_delay_ms: int = 3000, clock: Callable[[], float] = time.monotonic) -> None:
        self._min_delay_sec = min_delay_ms / 1000
        self._clock = clock
        self._last_scrape_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def last_scrape_at(self) -> Optional[float]:
        return self._last_scrape_at

    def try_acquire(self) -> ThrottleDecision:
        with self._lock:
            now = self._clock()
            if self._last_scrape_at is not None:
                elapsed = now - self._last_scrape_at
                if elapsed < self._min_delay_sec:
                    wait = max(1, math.ceil(self._min_delay_sec - elapsed))
                    return ThrottleDecision(allowed=False, wait_seconds=wait)
            self._last_scrape_at = now
            return ThrottleDecision(allowed=True)
