import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cinedrive.api.cache import router as cache_router
from cinedrive.api.videos import router as videos_router
from cinedrive.config import BG_REFRESH_ENABLED, CORS_ORIGINS, LOG_LEVEL, RATE_LIMIT_SWEEP_INTERVAL_MS
from cinedrive.core.exceptions import VideoUrlError
from cinedrive.infrastructure.cache.rate_limit import start_rate_limit_sweeper
from cinedrive.infrastructure.db.indexes import ensure_indexes
from cinedrive.infrastructure.db.mongo_client import close_mongo_clients
from cinedrive.infrastructure.video_urls import UrlServices, build_url_services

log = logging.getLogger("cinedrive.main")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def error_response(exc: VideoUrlError) -> JSONResponse:
    content = {"success": False, "errorKind": exc.error_kind, "message": exc.message}
    headers = {}
    retry_after = getattr(exc, "retry_after_seconds", None) or getattr(exc, "wait_seconds", None)
    if retry_after is not None:
        content["retryAfterSeconds"] = retry_after
        headers["Retry-After"] = str(retry_after)
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def _video_url_error_handler(request: Request, exc: VideoUrlError) -> JSONResponse:
    return error_response(exc)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_kind = "not_found" if exc.status_code == 404 else "http_error"
    message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "errorKind": error_kind, "message": message},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "errorKind": "internal_error",
            "message": "Internal server error",
            "details": str(exc),
        },
    )


def create_app(services: Optional[UrlServices] = None, start_background: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_url_services()
        url_services: UrlServices = app.state.services

        stop_event = asyncio.Event()
        sweeper = None
        if start_background:
            try:
                await ensure_indexes()
            except Exception:
                log.exception("Failed to ensure MongoDB indexes")
            if BG_REFRESH_ENABLED:
                url_services.scheduler.start()
            sweeper = start_rate_limit_sweeper(
                url_services.request_limiter,
                RATE_LIMIT_SWEEP_INTERVAL_MS / 1000,
                stop_event,
            )
        try:
            yield
        finally:
            log.info("Shutting down server...")
            stop_event.set()
            if sweeper is not None:
                await sweeper
            await url_services.scheduler.stop()
            if start_background:
                close_mongo_clients()

    app = FastAPI(title="CineDrive video URL service", lifespan=lifespan)
    app.state.started_at = time.monotonic()
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(VideoUrlError, _video_url_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(videos_router)
    app.include_router(cache_router)

    @app.get("/api/health")
    def health():
        url_services = getattr(app.state, "services", None)
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - app.state.started_at, 3),
            "background_refresh": url_services.scheduler.state.value if url_services else None,
        }

    return app


configure_logging()
app = create_app()
