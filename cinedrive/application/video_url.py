import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from cinedrive.application.cache_validity import evaluate_cache
from cinedrive.application.models import CacheStatus, CatalogEntry, VideoUrlResult
from cinedrive.application.ports.catalog_repository import CatalogRepository
from cinedrive.application.refresh import RefreshVideoUrlUseCase
from cinedrive.core.exceptions import EntryNotFoundError, StorageUnavailableError
from cinedrive.core.links import SourceKind, classify_source, is_direct_url, parse_expiry_param

log = logging.getLogger("cinedrive.video_url")

UrlProbe = Callable[[str], Awaitable[bool]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GetVideoUrlUseCase:
    def __init__(
        self,
        repository: CatalogRepository,
        refresh: RefreshVideoUrlUseCase,
        probe: Optional[UrlProbe] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._refresh = refresh
        self._probe = probe
        self._clock = clock

    async def load_entry(self, kind: str, entry_id: int) -> CatalogEntry:
        try:
            entry = await self._repository.get_entry(kind, entry_id)
        except Exception as exc:
            log.exception("Failed to load %s id=%s", kind, entry_id)
            raise StorageUnavailableError("Catalog storage unavailable", details=str(exc))
        if entry is None:
            raise EntryNotFoundError(kind, entry_id)
        return entry

    async def execute(self, entry: CatalogEntry, force_refresh: bool = False) -> VideoUrlResult:
        now = self._clock()

        if not force_refresh:
            decision = evaluate_cache(entry, now)
            if decision.status == CacheStatus.HIT:
                if await self._is_reachable(decision.url):
                    log.info("Cache HIT %s id=%s title=%r", entry.kind, entry.id, entry.title)
                    return VideoUrlResult(
                        url=decision.url,
                        cached=True,
                        expires_at=decision.expires_at,
                        quality=entry.quality,
                    )
                log.warning("Cached URL not reachable, fetching fresh %s id=%s", entry.kind, entry.id)
            elif decision.status == CacheStatus.EXPIRED:
                log.info("Cache EXPIRED %s id=%s expired_at=%s", entry.kind, entry.id, decision.expires_at)
            else:
                log.info("Cache MISS %s id=%s reason=%s", entry.kind, entry.id, decision.reason)

        source = (entry.source_identifier or "").strip()
        if source:
            source_kind = classify_source(source)
            if source_kind == SourceKind.SELF_HOSTED_URL:
                log.info("Self-hosted video URL, no scraping needed %s id=%s", entry.kind, entry.id)
                return VideoUrlResult(url=source, cached=False, expires_at=None, quality=entry.quality)

            if source_kind == SourceKind.CDN_URL and not force_refresh and is_direct_url(source):
                encoded_expiry = parse_expiry_param(source)
                if encoded_expiry is not None and encoded_expiry > now:
                    hours_left = (encoded_expiry - now).total_seconds() / 3600
                    log.info("Stored CDN URL valid for %.1f more hours %s id=%s", hours_left, entry.kind, entry.id)
                    return VideoUrlResult(url=source, cached=False, expires_at=encoded_expiry, quality=entry.quality)

        return await self._refresh.execute(entry)

    async def _is_reachable(self, url: str) -> bool:
        if self._probe is None:
            return True
        try:
            return await self._probe(url)
        except Exception:
            log.exception("URL probe raised for %s", url[:100])
            return False
