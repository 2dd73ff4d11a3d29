from dataclasses import dataclass
from datetime import timedelta
from functools import partial

from cinedrive.application.ports.catalog_repository import CatalogRepository
from cinedrive.application.ports.video_scraper import VideoScraper
from cinedrive.application.refresh import RefreshVideoUrlUseCase
from cinedrive.application.video_url import GetVideoUrlUseCase
from cinedrive.config import (
    BG_REFRESH_BATCH_SIZE,
    BG_REFRESH_BEFORE_EXPIRY_HOURS,
    BG_REFRESH_INTERVAL_MS,
    BG_REFRESH_ITEM_DELAY_MS,
    EPISODES_COLLECTION,
    FB_SCRAPE_DELAY_MS,
    MOVIES_COLLECTION,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_WINDOW_MS,
    SCRAPE_TIMEOUT_SEC,
    URL_EXPIRY_FALLBACK_HOURS,
    URL_PROBE_ENABLED,
    URL_PROBE_TIMEOUT_SEC,
)
from cinedrive.infrastructure.cache.rate_limit import RequestRateLimiter
from cinedrive.infrastructure.cache.scrape_throttle import ScrapeThrottle
from cinedrive.infrastructure.cache.url_refresher import BackgroundRefreshScheduler
from cinedrive.infrastructure.db.catalog_repository import MongoCatalogRepository
from cinedrive.infrastructure.url_probe import probe_url
from cinedrive.infrastructure.ytdlp_scraper import YtDlpVideoScraper


@dataclass
class UrlServices:
    repository: CatalogRepository
    scraper: VideoScraper
    request_limiter: RequestRateLimiter
    throttle: ScrapeThrottle
    refresh: RefreshVideoUrlUseCase
    lookup: GetVideoUrlUseCase
    scheduler: BackgroundRefreshScheduler


def build_url_services() -> UrlServices:
    """Wire one shared throttle into both the request path and the scheduler."""
    repository = MongoCatalogRepository(
        movies_collection=MOVIES_COLLECTION,
        episodes_collection=EPISODES_COLLECTION,
    )
    scraper = YtDlpVideoScraper(timeout_sec=SCRAPE_TIMEOUT_SEC)
    throttle = ScrapeThrottle(min_delay_ms=FB_SCRAPE_DELAY_MS)
    refresh = RefreshVideoUrlUseCase(
        repository,
        scraper,
        throttle,
        fallback_window=timedelta(hours=URL_EXPIRY_FALLBACK_HOURS),
    )
    probe = partial(probe_url, timeout=URL_PROBE_TIMEOUT_SEC) if URL_PROBE_ENABLED else None
    lookup = GetVideoUrlUseCase(repository, refresh, probe=probe)
    scheduler = BackgroundRefreshScheduler(
        repository,
        refresh,
        interval_sec=BG_REFRESH_INTERVAL_MS / 1000,
        refresh_before_expiry=timedelta(hours=BG_REFRESH_BEFORE_EXPIRY_HOURS),
        batch_size=BG_REFRESH_BATCH_SIZE,
        item_delay_sec=BG_REFRESH_ITEM_DELAY_MS / 1000,
    )
    return UrlServices(
        repository=repository,
        scraper=scraper,
        request_limiter=RequestRateLimiter(
            max_requests=RATE_LIMIT_MAX_REQUESTS,
            window_ms=RATE_LIMIT_WINDOW_MS,
        ),
        throttle=throttle,
        refresh=refresh,
        lookup=lookup,
        scheduler=scheduler,
    )
