from cinedrive.infrastructure.cache.scrape_throttle import ScrapeThrottle
from cinedrive.infrastructure.video_urls import build_url_services


def test_request_path_and_scheduler_share_one_throttle():
    services = build_url_services()

    assert isinstance(services.throttle, ScrapeThrottle)
    assert services.refresh._throttle is services.throttle
    assert services.lookup._refresh is services.refresh
    assert services.scheduler._refresh is services.refresh
    assert services.scheduler._refresh._throttle is services.throttle


def test_fallback_window_comes_from_settings(monkeypatch):
    monkeypatch.setattr("cinedrive.infrastructure.video_urls.URL_EXPIRY_FALLBACK_HOURS", 3)

    services = build_url_services()

    assert services.refresh._fallback_window.total_seconds() == 3 * 3600
