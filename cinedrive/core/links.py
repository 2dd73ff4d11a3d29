"""URL helpers for platform-hosted catalog videos.

Everything here is pure: no I/O, no logging, safe to call from any task.
"""
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

CDN_MARKER = "fbcdn.net"
PLUGIN_MARKER = "plugins"
PLATFORM_MARKERS = ("facebook.com", "fb.watch")
WATCH_URL_TEMPLATE = "https://www.facebook.com/watch?v={video_id}"

DEFAULT_FALLBACK_WINDOW = timedelta(hours=24)

# "oe" carries the link's expiry as a hex unix timestamp.
_EXPIRY_PARAM = re.compile(r"[&?]oe=([A-F0-9]+)", re.IGNORECASE)
_VIDEO_ID_PATTERN = re.compile(r"(?:videos?/|[?&]v=)(\d+)")


class SourceKind(str, Enum):
    CDN_URL = "cdn_url"
    PLATFORM_URL = "platform_url"
    SELF_HOSTED_URL = "self_hosted_url"
    PLATFORM_ID = "platform_id"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_expiry_param(url: Optional[str]) -> Optional[datetime]:
    if not url:
        return None
    match = _EXPIRY_PARAM.search(url)
    if not match:
        return None
    try:
        return datetime.fromtimestamp(int(match.group(1), 16), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def extract_expiration(
    url: Optional[str],
    now: Optional[datetime] = None,
    fallback: timedelta = DEFAULT_FALLBACK_WINDOW,
) -> datetime:
    """Expiry encoded in the link, or ``now + fallback`` when there is none. Never raises."""
    encoded = parse_expiry_param(url)
    if encoded is not None:
        return encoded
    return (now or _utcnow()) + fallback


def extract_quality(url: Optional[str]) -> str:
    if not url:
        return "unknown"
    if "1080p" in url or "hd" in url:
        return "1080p"
    if "720p" in url:
        return "720p"
    if "480p" in url or "sd" in url:
        return "480p"
    if "360p" in url:
        return "360p"
    return "unknown"


def is_direct_url(url: Optional[str]) -> bool:
    """True for links straight to a CDN media file, False for embed/plugin wrappers."""
    if not url:
        return False
    return CDN_MARKER in url and PLUGIN_MARKER not in url


def extract_platform_video_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = _VIDEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def classify_source(source: str) -> SourceKind:
    if not source.startswith(("http://", "https://")):
        return SourceKind.PLATFORM_ID
    if CDN_MARKER in source:
        return SourceKind.CDN_URL
    if any(marker in source for marker in PLATFORM_MARKERS):
        return SourceKind.PLATFORM_URL
    return SourceKind.SELF_HOSTED_URL


def build_watch_url(identifier: str) -> str:
    if identifier.startswith(("http://", "https://")):
        return identifier
    return WATCH_URL_TEMPLATE.format(video_id=identifier)
