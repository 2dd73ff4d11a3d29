from datetime import datetime

from cinedrive.application.models import CacheDecision, CacheStatus, CatalogEntry
from cinedrive.core.links import is_direct_url


def evaluate_cache(entry: CatalogEntry, now: datetime) -> CacheDecision:
    """Classify the entry's cached link as HIT, MISS or EXPIRED.

    A half-set pair counts as MISS. A time-valid link that is not
    direct-link shaped also degrades to MISS. The URL on an EXPIRED
    decision is stale and must not be served.
    """
    if not entry.cached_url or entry.cache_expires_at is None:
        return CacheDecision(CacheStatus.MISS, reason="no cached url")

    if entry.cache_expires_at > now:
        if not is_direct_url(entry.cached_url):
            return CacheDecision(CacheStatus.MISS, reason="cached url is not a direct link")
        return CacheDecision(CacheStatus.HIT, url=entry.cached_url, expires_at=entry.cache_expires_at)

    return CacheDecision(
        CacheStatus.EXPIRED,
        url=entry.cached_url,
        expires_at=entry.cache_expires_at,
        reason="cached url expired",
    )
