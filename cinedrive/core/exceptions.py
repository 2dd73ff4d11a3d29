from typing import Optional


class VideoUrlError(Exception):
    error_kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidInputError(VideoUrlError):
    error_kind = "invalid_input"
    status_code = 400


class EntryNotFoundError(VideoUrlError):
    error_kind = "not_found"
    status_code = 404

    def __init__(self, kind: str, entry_id: int):
        self.kind = kind
        self.entry_id = entry_id
        super().__init__(f"{kind.capitalize()} {entry_id} not found")


class StorageUnavailableError(VideoUrlError):
    error_kind = "storage_unavailable"
    status_code = 503


class RateLimitedError(VideoUrlError):
    error_kind = "rate_limited"
    status_code = 429

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Too many requests. Please wait {retry_after_seconds} seconds before trying again")


class ThrottledError(VideoUrlError):
    error_kind = "throttled"
    status_code = 429

    def __init__(self, wait_seconds: int):
        self.wait_seconds = wait_seconds
        super().__init__(f"Upstream scraping is rate limited. Please wait {wait_seconds} seconds to avoid blocking")


class UnresolvableIdentifierError(VideoUrlError):
    error_kind = "unresolvable_identifier"
    status_code = 500

    def __init__(self, source_identifier: Optional[str]):
        self.source_identifier = source_identifier
        preview = (source_identifier or "")[:100]
        super().__init__(
            "The stored video source cannot be scraped. Update it with a fresh CDN URL or a video ID in the admin panel.",
            details=preview or None,
        )


class IndirectUrlRejectedError(VideoUrlError):
    error_kind = "indirect_url_rejected"
    status_code = 500

    def __init__(self, url: str):
        self.url = url
        super().__init__("Could not extract a direct video URL", details=url[:200])


class ScrapeFailedError(VideoUrlError):
    error_kind = "scrape_failed"
    status_code = 500

    def __init__(self, reason: Optional[str], identifier: Optional[str] = None):
        self.reason = reason or "scraper returned no usable result"
        self.identifier = identifier
        super().__init__(
            "The video may be private, deleted, or temporarily unavailable. Please try again later.",
            details=self.reason,
        )


class PersistenceFailedError(VideoUrlError):
    error_kind = "persistence_failed"
    status_code = 500
