import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pymongo.errors import PyMongoError

from cinedrive.application.models import CATALOG_KINDS, EPISODE, MOVIE, CatalogEntry
from cinedrive.application.ports.catalog_repository import CatalogRepository
from cinedrive.core.exceptions import PersistenceFailedError
from cinedrive.infrastructure.db.mongo_client import get_mongo_db

log = logging.getLogger("cinedrive.catalog_repo")

_ENTRY_PROJECTION = {
    "_id": 1,
    "title": 1,
    "video_url": 1,
    "cached_video_url": 1,
    "url_expires_at": 1,
    "quality": 1,
}


def entry_from_doc(kind: str, doc: Dict[str, Any]) -> CatalogEntry:
    return CatalogEntry(
        id=doc["_id"],
        title=doc.get("title") or "",
        source_identifier=doc.get("video_url"),
        cached_url=doc.get("cached_video_url"),
        cache_expires_at=doc.get("url_expires_at"),
        quality=doc.get("quality"),
        kind=kind,
    )


class MongoCatalogRepository(CatalogRepository):
    def __init__(
        self,
        movies_collection: str = "movies",
        episodes_collection: str = "episodes",
        db_factory: Callable[[], Any] = get_mongo_db,
    ) -> None:
        self._collection_names = {MOVIE: movies_collection, EPISODE: episodes_collection}
        self._db_factory = db_factory

    def _collection(self, kind: str):
        try:
            name = self._collection_names[kind]
        except KeyError:
            raise ValueError(f"unknown catalog kind: {kind}")
        return self._db_factory()[name]

    async def get_entry(self, kind: str, entry_id: int) -> Optional[CatalogEntry]:
        doc = await self._collection(kind).find_one({"_id": entry_id}, _ENTRY_PROJECTION)
        if doc is None:
            return None
        return entry_from_doc(kind, doc)

    async def update_cache(
        self,
        kind: str,
        entry_id: int,
        url: str,
        expires_at: datetime,
        quality: Optional[str] = None,
    ) -> bool:
        set_doc: Dict[str, Any] = {"cached_video_url": url, "url_expires_at": expires_at}
        if quality:
            set_doc["quality"] = quality
        try:
            result = await self._collection(kind).update_one({"_id": entry_id}, {"$set": set_doc})
        except PyMongoError as exc:
            raise PersistenceFailedError(f"cache update failed for {kind} {entry_id}", details=str(exc))
        return result.matched_count > 0

    async def find_expiring(self, now: datetime, until: datetime, limit: int) -> List[CatalogEntry]:
        query = {
            "cached_video_url": {"$ne": None},
            "url_expires_at": {"$gt": now, "$lt": until},
        }
        entries: List[CatalogEntry] = []
        for kind in CATALOG_KINDS:
            cursor = (
                self._collection(kind)
                .find(query, _ENTRY_PROJECTION)
                .sort([("url_expires_at", 1), ("_id", 1)])
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
            entries.extend(entry_from_doc(kind, doc) for doc in docs)
        entries.sort(key=lambda e: e.cache_expires_at)
        return entries[:limit]

    async def clear_expired_cache(self, now: datetime) -> int:
        cleared = 0
        for kind in CATALOG_KINDS:
            result = await self._collection(kind).update_many(
                {"url_expires_at": {"$lt": now}},
                {"$set": {"cached_video_url": None, "url_expires_at": None}},
            )
            cleared += result.modified_count
        if cleared:
            log.info("Cleared %d expired cache entries", cleared)
        return cleared

    async def cache_stats(self, now: datetime) -> Dict[str, Dict[str, int]]:
        stats: Dict[str, Dict[str, int]] = {}
        for kind in CATALOG_KINDS:
            collection = self._collection(kind)
            stats[kind] = {
                "total": await collection.count_documents({}),
                "cached": await collection.count_documents({"cached_video_url": {"$ne": None}}),
                "expired": await collection.count_documents(
                    {"cached_video_url": {"$ne": None}, "url_expires_at": {"$lt": now}}
                ),
            }
        return stats
