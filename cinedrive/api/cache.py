import logging
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cinedrive.core.exceptions import StorageUnavailableError
from cinedrive.infrastructure.cache.rate_limit import rate_limit

router = APIRouter()
log = logging.getLogger("cinedrive.cache_api")


def _hit_rate(cached: int, total: int) -> str:
    if total <= 0:
        return "0%"
    return f"{cached / total * 100:.2f}%"


def _summarize(counts: Dict[str, int]) -> Dict[str, object]:
    return {
        "total_entries": counts["total"],
        "cached_entries": counts["cached"],
        "expired_cache": counts["expired"],
        "cache_hit_rate": _hit_rate(counts["cached"], counts["total"]),
    }


@router.get("/api/cache/stats")
@rate_limit
async def get_cache_stats(fastapi_request: Request) -> JSONResponse:
    repository = fastapi_request.app.state.services.repository
    try:
        stats = await repository.cache_stats(datetime.now(timezone.utc))
    except Exception as exc:
        log.exception("Failed to fetch cache statistics")
        raise StorageUnavailableError("Failed to fetch cache statistics", details=str(exc))

    totals = {"total": 0, "cached": 0, "expired": 0}
    for counts in stats.values():
        for key in totals:
            totals[key] += counts.get(key, 0)

    statistics = _summarize(totals)
    statistics["by_kind"] = {kind: _summarize(counts) for kind, counts in stats.items()}
    return JSONResponse(status_code=200, content={"success": True, "statistics": statistics})


@router.post("/api/cache/clear-expired")
@rate_limit
async def clear_expired_cache(fastapi_request: Request) -> JSONResponse:
    repository = fastapi_request.app.state.services.repository
    try:
        cleared = await repository.clear_expired_cache(datetime.now(timezone.utc))
    except Exception as exc:
        log.exception("Failed to clear expired cache")
        raise StorageUnavailableError("Failed to clear expired cache", details=str(exc))
    return JSONResponse(status_code=200, content={"success": True, "cleared": cleared})
