from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from cinedrive.application.models import MOVIE, CatalogEntry, ScrapeResult
from cinedrive.application.refresh import RefreshVideoUrlUseCase
from cinedrive.application.video_url import GetVideoUrlUseCase
from cinedrive.infrastructure.cache.rate_limit import RequestRateLimiter
from cinedrive.infrastructure.cache.scrape_throttle import ScrapeThrottle
from cinedrive.infrastructure.cache.url_refresher import BackgroundRefreshScheduler
from cinedrive.infrastructure.video_urls import UrlServices

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
DIRECT_URL = "https://video.xx.fbcdn.net/v/t42/clip_720p.mp4?oe=6B000000&_nc_cat=1"
PLUGIN_URL = "https://www.facebook.com/plugins/video.php?href=https%3A%2F%2Fwww.facebook.com%2Fwatch%3Fv%3D1"


class FakeClock:
    """Wall clock for use cases and a monotonic clock for limiters, moved together."""

    def __init__(self, now: datetime = NOW):
        self.now = now
        self.ticks = 1000.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.ticks

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        self.ticks += seconds


class InMemoryCatalogRepository:
    def __init__(self, entries: Optional[List[CatalogEntry]] = None):
        self.entries: Dict[Tuple[str, int], CatalogEntry] = {}
        self.updates: List[Tuple[str, int, str, datetime]] = []
        self.fail_updates = False
        self.fail_reads = False
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: CatalogEntry) -> CatalogEntry:
        self.entries[(entry.kind, entry.id)] = entry
        return entry

    async def get_entry(self, kind: str, entry_id: int) -> Optional[CatalogEntry]:
        if self.fail_reads:
            raise RuntimeError("storage unreachable")
        return self.entries.get((kind, entry_id))

    async def update_cache(self, kind, entry_id, url, expires_at, quality=None) -> bool:
        if self.fail_updates:
            raise RuntimeError("write failed")
        self.updates.append((kind, entry_id, url, expires_at))
        entry = self.entries.get((kind, entry_id))
        if entry is None:
            return False
        entry.cached_url = url
        entry.cache_expires_at = expires_at
        if quality:
            entry.quality = quality
        return True

    async def find_expiring(self, now, until, limit) -> List[CatalogEntry]:
        if self.fail_reads:
            raise RuntimeError("storage unreachable")
        matches = [
            e for e in self.entries.values()
            if e.cached_url and e.cache_expires_at is not None and now < e.cache_expires_at < until
        ]
        matches.sort(key=lambda e: e.cache_expires_at)
        return matches[:limit]

    async def clear_expired_cache(self, now) -> int:
        cleared = 0
        for entry in self.entries.values():
            if entry.cache_expires_at is not None and entry.cache_expires_at < now:
                entry.cached_url = None
                entry.cache_expires_at = None
                cleared += 1
        return cleared

    async def cache_stats(self, now) -> Dict[str, Dict[str, int]]:
        stats: Dict[str, Dict[str, int]] = {}
        for entry in self.entries.values():
            counts = stats.setdefault(entry.kind, {"total": 0, "cached": 0, "expired": 0})
            counts["total"] += 1
            if entry.cached_url:
                counts["cached"] += 1
                if entry.cache_expires_at is not None and entry.cache_expires_at < now:
                    counts["expired"] += 1
        return stats


class FakeScraper:
    def __init__(self, *results: ScrapeResult):
        self.results = list(results)
        self.calls: List[str] = []

    async def scrape(self, identifier: str) -> ScrapeResult:
        self.calls.append(identifier)
        if not self.results:
            return ScrapeResult(success=False, error="no scripted result")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSleep:
    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def make_entry(entry_id: int = 1, source: Optional[str] = "1234567890", kind: str = MOVIE, **kwargs) -> CatalogEntry:
    return CatalogEntry(id=entry_id, title=f"Title {entry_id}", source_identifier=source, kind=kind, **kwargs)


def make_services(
    repository: InMemoryCatalogRepository,
    scraper: FakeScraper,
    clock: FakeClock,
    probe=None,
    max_requests: int = 10,
    min_delay_ms: int = 3000,
) -> UrlServices:
    sleep = RecordingSleep(clock)
    throttle = ScrapeThrottle(min_delay_ms=min_delay_ms, clock=clock.monotonic)
    refresh = RefreshVideoUrlUseCase(repository, scraper, throttle, clock=clock, sleep=sleep)
    return UrlServices(
        repository=repository,
        scraper=scraper,
        request_limiter=RequestRateLimiter(max_requests=max_requests, window_ms=60000, clock=clock.monotonic),
        throttle=throttle,
        refresh=refresh,
        lookup=GetVideoUrlUseCase(repository, refresh, probe=probe, clock=clock),
        scheduler=BackgroundRefreshScheduler(repository, refresh, clock=clock, sleep=sleep),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
