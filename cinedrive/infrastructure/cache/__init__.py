from cinedrive.infrastructure.cache.rate_limit import RateLimitDecision, RequestRateLimiter, rate_limit
from cinedrive.infrastructure.cache.scrape_throttle import ScrapeThrottle, ThrottleDecision

__all__ = ["RateLimitDecision", "RequestRateLimiter", "ScrapeThrottle", "ThrottleDecision", "rate_limit"]
