import asyncio
import logging

import requests

log = logging.getLogger("cinedrive.url_probe")


def _head_ok(url: str, timeout: float) -> bool:
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        log.info("Probe failed for %s: %s", url[:100], exc)
        return False
    return response.status_code in (200, 206)


async def probe_url(url: str, timeout: float = 5) -> bool:
    """Lightweight existence check for a media link; never raises."""
    return await asyncio.to_thread(_head_ok, url, timeout)
