import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from starlette.responses import JSONResponse

from cinedrive.core.exceptions import RateLimitedError

log = logging.getLogger("cinedrive.rate_limit")


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: Optional[int] = None


@dataclass
class RateWindowRecord:
    count: int
    reset_at: float


class RequestRateLimiter:
    """Fixed-window request counter keyed by client address.

    A window starts with the first request of a key and is replaced
    wholesale once it has passed; counts never decay inside a window.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_ms: int = 60000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_sec = window_ms / 1000
        self._clock = clock
        self._records: Dict[str, RateWindowRecord] = {}
        self._lock = threading.Lock()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def active_keys(self) -> int:
        with self._lock:
            return len(self._records)

    def check(self, client_key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            record = self._records.get(client_key)

            if record is None or now > record.reset_at:
                self._records[client_key] = RateWindowRecord(count=1, reset_at=now + self._window_sec)
                return RateLimitDecision(allowed=True, remaining=self._max_requests - 1)

            if record.count >= self._max_requests:
                retry_after = max(1, math.ceil(record.reset_at - now))
                return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)

            record.count += 1
            return RateLimitDecision(allowed=True, remaining=self._max_requests - record.count)

    def sweep(self) -> int:
        """Drop records whose window ended more than one extra window ago."""
        with self._lock:
            now = self._clock()
            stale = [key for key, record in self._records.items() if now > record.reset_at + self._window_sec]
            for key in stale:
                del self._records[key]
            return len(stale)


def start_rate_limit_sweeper(
    limiter: RequestRateLimiter,
    interval_sec: float,
    stop_event: asyncio.Event,
) -> "asyncio.Task[None]":
    async def _loop() -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_sec)
                break
            except asyncio.TimeoutError:
                pass
            removed = limiter.sweep()
            log.info("Rate limiter swept removed=%d active=%d", removed, limiter.active_keys)

    return asyncio.create_task(_loop())


def client_key_for(request: Request) -> str:
    x_forwarded_for = request.headers.get("x-forwarded-for")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(f):
    @wraps(f)
    async def decorated_function(*args, **kwargs):
        fastapi_request = kwargs.get("fastapi_request")
        if not fastapi_request:
            return JSONResponse(
                status_code=400,
                content={"success": False, "errorKind": "invalid_input", "message": "Request object is required"},
            )

        limiter: RequestRateLimiter = fastapi_request.app.state.services.request_limiter
        identifier = client_key_for(fastapi_request)
        decision = limiter.check(identifier)
        if not decision.allowed:
            log.warning("Rate limit exceeded ip=%s retry_after=%s", identifier, decision.retry_after_seconds)
            raise RateLimitedError(decision.retry_after_seconds)

        response = await f(*args, **kwargs)
        if isinstance(response, Response):
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response

    return decorated_function
