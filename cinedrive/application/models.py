from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

MOVIE = "movie"
EPISODE = "episode"
CATALOG_KINDS = (MOVIE, EPISODE)


@dataclass
class CatalogEntry:
    id: int
    title: str
    source_identifier: Optional[str]
    cached_url: Optional[str] = None
    cache_expires_at: Optional[datetime] = None
    quality: Optional[str] = None
    kind: str = MOVIE


@dataclass
class ScrapeResult:
    success: bool
    url: Optional[str] = None
    quality: Optional[str] = None
    expires_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class VideoUrlResult:
    url: str
    cached: bool
    expires_at: Optional[datetime]
    quality: Optional[str] = None

    def to_payload(self, entry: CatalogEntry) -> Dict[str, Any]:
        return {
            "success": True,
            "url": self.url,
            "cached": self.cached,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "quality": self.quality or "unknown",
            "entry": {"id": entry.id, "title": entry.title, "kind": entry.kind},
        }


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"


@dataclass
class CacheDecision:
    status: CacheStatus
    # For EXPIRED this is the stale URL, kept only for diagnostics.
    url: Optional[str] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


class ItemOutcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RefreshItemReport:
    kind: str
    entry_id: int
    title: str
    outcome: ItemOutcome
    reason: Optional[str] = None


@dataclass
class RefreshPassReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    items: List[RefreshItemReport] = field(default_factory=list)
    error: Optional[str] = None

    def count(self, outcome: ItemOutcome) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def processed(self) -> int:
        return len(self.items)


@dataclass
class ThrottleDecision:
    allowed: bool
    wait_seconds: Optional[int] = None
