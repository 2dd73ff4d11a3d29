from typing import Protocol

from cinedrive.application.models import ThrottleDecision


class ScrapeThrottle(Protocol):
    def try_acquire(self) -> ThrottleDecision:
        ...
