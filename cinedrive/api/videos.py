import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cinedrive.application.models import EPISODE, MOVIE
from cinedrive.core.exceptions import InvalidInputError
from cinedrive.infrastructure.cache.rate_limit import rate_limit

router = APIRouter()
log = logging.getLogger("cinedrive.videos")


def _parse_entry_id(raw: str, kind: str) -> int:
    if not raw or not raw.isdigit():
        raise InvalidInputError(f"Invalid {kind} ID")
    return int(raw)


async def _serve_video_url(fastapi_request: Request, kind: str, raw_id: str, force_refresh: bool = False) -> JSONResponse:
    lookup = fastapi_request.app.state.services.lookup
    entry_id = _parse_entry_id(raw_id, kind)
    entry = await lookup.load_entry(kind, entry_id)
    if force_refresh:
        log.info("Force refresh requested %s id=%s", kind, entry_id)
    result = await lookup.execute(entry, force_refresh=force_refresh)
    return JSONResponse(status_code=200, content=result.to_payload(entry))


@router.get("/api/video/episode/{entry_id}")
@rate_limit
async def get_episode_video_url(entry_id: str, fastapi_request: Request) -> JSONResponse:
    return await _serve_video_url(fastapi_request, EPISODE, entry_id)


@router.get("/api/video/{entry_id}")
@rate_limit
async def get_movie_video_url(entry_id: str, fastapi_request: Request) -> JSONResponse:
    return await _serve_video_url(fastapi_request, MOVIE, entry_id)


@router.post("/api/refresh/episode/{entry_id}")
@rate_limit
async def refresh_episode_video_url(entry_id: str, fastapi_request: Request) -> JSONResponse:
    return await _serve_video_url(fastapi_request, EPISODE, entry_id, force_refresh=True)


@router.post("/api/refresh/{entry_id}")
@rate_limit
async def refresh_movie_video_url(entry_id: str, fastapi_request: Request) -> JSONResponse:
    return await _serve_video_url(fastapi_request, MOVIE, entry_id, force_refresh=True)
