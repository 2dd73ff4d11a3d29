from typing import Protocol

from cinedrive.application.models import ScrapeResult


class VideoScraper(Protocol):
    async def scrape(self, identifier: str) -> ScrapeResult:
        ...
