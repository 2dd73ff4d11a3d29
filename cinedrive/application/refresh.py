import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from cinedrive.application.models import CatalogEntry, VideoUrlResult
from cinedrive.application.ports.catalog_repository import CatalogRepository
from cinedrive.application.ports.scrape_throttle import ScrapeThrottle
from cinedrive.application.ports.video_scraper import VideoScraper
from cinedrive.core.exceptions import (
    IndirectUrlRejectedError,
    ScrapeFailedError,
    ThrottledError,
    UnresolvableIdentifierError,
)
from cinedrive.core.links import (
    DEFAULT_FALLBACK_WINDOW,
    SourceKind,
    classify_source,
    extract_expiration,
    extract_platform_video_id,
    extract_quality,
    is_direct_url,
)

log = logging.getLogger("cinedrive.refresh")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_scrape_identifier(entry: CatalogEntry) -> str:
    source = (entry.source_identifier or "").strip()
    if not source:
        raise UnresolvableIdentifierError(entry.source_identifier)

    kind = classify_source(source)
    if kind == SourceKind.CDN_URL:
        video_id = extract_platform_video_id(source)
        if not video_id:
            raise UnresolvableIdentifierError(source)
        log.info("Re-scraping using extracted video id=%s entry=%s", video_id, entry.id)
        return video_id
    if kind == SourceKind.SELF_HOSTED_URL:
        raise UnresolvableIdentifierError(source)
    return source


class RefreshVideoUrlUseCase:
    """Reacquire a direct URL for one entry: throttle, scrape, validate, write back."""

    def __init__(
        self,
        repository: CatalogRepository,
        scraper: VideoScraper,
        throttle: ScrapeThrottle,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        fallback_window: timedelta = DEFAULT_FALLBACK_WINDOW,
    ) -> None:
        self._repository = repository
        self._scraper = scraper
        self._throttle = throttle
        self._clock = clock
        self._sleep = sleep
        self._fallback_window = fallback_window

    async def execute(self, entry: CatalogEntry, wait_for_throttle: bool = False) -> VideoUrlResult:
        identifier = resolve_scrape_identifier(entry)
        await self._acquire_throttle(entry, wait_for_throttle)

        log.info("Scraping %s id=%s title=%r identifier=%s", entry.kind, entry.id, entry.title, identifier)
        try:
            scraped = await self._scraper.scrape(identifier)
        except Exception as exc:
            raise ScrapeFailedError(str(exc), identifier) from exc

        if not scraped.success or not scraped.url:
            log.error("Scraping failed %s id=%s error=%s", entry.kind, entry.id, scraped.error)
            raise ScrapeFailedError(scraped.error, identifier)

        if not is_direct_url(scraped.url):
            log.error("Scraped URL is not a direct video URL %s id=%s", entry.kind, entry.id)
            raise IndirectUrlRejectedError(scraped.url)

        expires_at = scraped.expires_at or extract_expiration(
            scraped.url, now=self._clock(), fallback=self._fallback_window
        )
        quality = scraped.quality or extract_quality(scraped.url)

        await self._persist(entry, scraped.url, expires_at, quality)
        return VideoUrlResult(url=scraped.url, cached=False, expires_at=expires_at, quality=quality)

    async def _acquire_throttle(self, entry: CatalogEntry, wait_for_throttle: bool) -> None:
        decision = self._throttle.try_acquire()
        while not decision.allowed:
            if not wait_for_throttle:
                log.info("Scrape throttled %s id=%s wait=%ss", entry.kind, entry.id, decision.wait_seconds)
                raise ThrottledError(decision.wait_seconds)
            log.info("Scrape throttled, waiting %ss before %s id=%s", decision.wait_seconds, entry.kind, entry.id)
            await self._sleep(decision.wait_seconds)
            decision = self._throttle.try_acquire()

    async def _persist(self, entry: CatalogEntry, url: str, expires_at: datetime, quality: str) -> None:
        # The fresh URL is returned even when the write-back fails.
        try:
            updated = await self._repository.update_cache(entry.kind, entry.id, url, expires_at, quality)
        except Exception:
            log.exception("Cache update failed %s id=%s", entry.kind, entry.id)
            return
        if updated:
            log.info("Cache updated %s id=%s expires=%s quality=%s", entry.kind, entry.id, expires_at.isoformat(), quality)
        else:
            log.warning("Cache update matched no %s with id=%s", entry.kind, entry.id)
