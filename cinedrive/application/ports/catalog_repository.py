from datetime import datetime
from typing import Dict, List, Optional, Protocol

from cinedrive.application.models import CatalogEntry


class CatalogRepository(Protocol):
    async def get_entry(self, kind: str, entry_id: int) -> Optional[CatalogEntry]:
        ...

    async def update_cache(
        self,
        kind: str,
        entry_id: int,
        url: str,
        expires_at: datetime,
        quality: Optional[str] = None,
    ) -> bool:
        ...

    async def find_expiring(self, now: datetime, until: datetime, limit: int) -> List[CatalogEntry]:
        ...

    async def clear_expired_cache(self, now: datetime) -> int:
        ...

    async def cache_stats(self, now: datetime) -> Dict[str, Dict[str, int]]:
        ...
