import asyncio
import logging
from typing import Any, Dict, Optional

import yt_dlp

from cinedrive.application.models import ScrapeResult
from cinedrive.application.ports.video_scraper import VideoScraper
from cinedrive.core.links import build_watch_url, extract_quality, is_direct_url, parse_expiry_param

log = logging.getLogger("cinedrive.scraper")


def _pick_direct_format(info: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    formats = [
        f for f in (info.get("formats") or [])
        if is_direct_url(f.get("url")) and f.get("vcodec") != "none"
    ]
    # Muxed audio+video first, then the tallest.
    formats.sort(
        key=lambda f: ((f.get("acodec") or "none") != "none", f.get("height") or 0),
        reverse=True,
    )
    if formats:
        return formats[0]
    if is_direct_url(info.get("url")):
        return info
    return None


class YtDlpVideoScraper(VideoScraper):
    def __init__(self, timeout_sec: float = 35):
        self._timeout_sec = timeout_sec
        self._ydl_opts = {
            "format": "best[ext=mp4]/best",
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
            "socket_timeout": min(timeout_sec, max(5, timeout_sec / 2)),
        }

    def _extract_info(self, url: str) -> Dict[str, Any]:
        with yt_dlp.YoutubeDL(self._ydl_opts) as ydl:
            return ydl.extract_info(url, download=False) or {}

    async def scrape(self, identifier: str) -> ScrapeResult:
        page_url = build_watch_url(identifier)
        log.info("Scraping %s", page_url)

        # wait_for cannot stop the worker thread; it runs on until yt-dlp's
        # socket_timeout (never above timeout_sec) ends the pending request.
        try:
            info = await asyncio.wait_for(
                asyncio.to_thread(self._extract_info, page_url),
                timeout=self._timeout_sec,
            )
        except asyncio.TimeoutError:
            return ScrapeResult(success=False, error=f"Scrape timed out after {self._timeout_sec}s")
        except yt_dlp.utils.DownloadError as e:
            return ScrapeResult(success=False, error=f"Download error: {e}")
        except Exception as e:
            log.exception("Unexpected scraper error for %s", page_url)
            return ScrapeResult(success=False, error=f"Unexpected error: {e}")

        chosen = _pick_direct_format(info)
        if chosen is None:
            fallback_url = info.get("url")
            if fallback_url:
                # Not direct-shaped; the caller decides to reject it.
                return ScrapeResult(success=True, url=fallback_url, quality=extract_quality(fallback_url))
            return ScrapeResult(success=False, error="No video URL found")

        url = chosen["url"]
        height = chosen.get("height")
        quality = f"{height}p" if height else extract_quality(url)
        # No "oe" means no expiry here; the caller applies its fallback window.
        return ScrapeResult(success=True, url=url, quality=quality, expires_at=parse_expiry_param(url))
