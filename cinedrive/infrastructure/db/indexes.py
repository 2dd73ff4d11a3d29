import logging

from pymongo.errors import OperationFailure

from cinedrive.config import EPISODES_COLLECTION, MOVIES_COLLECTION
from cinedrive.infrastructure.db.mongo_client import get_mongo_db

log = logging.getLogger("cinedrive.db.indexes")


async def _safe_create_index(collection, keys, **kwargs) -> None:
    """Create index if possible; ignore idempotent name/options conflicts."""
    try:
        await collection.create_index(keys, **kwargs)
    except OperationFailure as exc:
        # Common idempotent cases:
        # 85 IndexOptionsConflict, 86 IndexKeySpecsConflict
        if getattr(exc, "code", None) in (85, 86):
            log.warning("Skipping index creation due to existing equivalent/conflicting index: %s", exc)
            return
        raise


async def ensure_indexes() -> None:
    db = get_mongo_db()
    for collection_name in (MOVIES_COLLECTION, EPISODES_COLLECTION):
        await _safe_create_index(
            db[collection_name],
            [("url_expires_at", 1)],
            name=f"{collection_name}_url_expires_at",
        )
