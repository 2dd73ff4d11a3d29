import asyncio
from datetime import timedelta

from cinedrive.application.models import EPISODE, ItemOutcome, ScrapeResult
from cinedrive.application.refresh import RefreshVideoUrlUseCase
from cinedrive.infrastructure.cache.scrape_throttle import ScrapeThrottle
from cinedrive.infrastructure.cache.url_refresher import BackgroundRefreshScheduler, SchedulerState
from conftest import (
    DIRECT_URL,
    NOW,
    PLUGIN_URL,
    FakeScraper,
    InMemoryCatalogRepository,
    RecordingSleep,
    make_entry,
)

REFRESHED_URL = "https://video.xx.fbcdn.net/v/t42/renewed_720p.mp4?_nc_cat=7"


def build_scheduler(repository, scraper, clock, **kwargs):
    sleep = RecordingSleep(clock)
    throttle = ScrapeThrottle(min_delay_ms=3000, clock=clock.monotonic)
    refresh = RefreshVideoUrlUseCase(repository, scraper, throttle, clock=clock, sleep=sleep)
    scheduler = BackgroundRefreshScheduler(repository, refresh, clock=clock, sleep=sleep, **kwargs)
    return scheduler, sleep


def expiring_entry(entry_id, minutes, **kwargs):
    return make_entry(
        entry_id,
        source=str(1000 + entry_id),
        cached_url=DIRECT_URL,
        cache_expires_at=NOW + timedelta(minutes=minutes),
        **kwargs,
    )


def test_pass_refreshes_soonest_expiring_first_and_caps_batch(clock):
    entries = [expiring_entry(i, minutes=100 - i * 10) for i in range(1, 8)]
    repository = InMemoryCatalogRepository(entries)
    scraper = FakeScraper(*[ScrapeResult(success=True, url=REFRESHED_URL) for _ in range(7)])
    scheduler, _ = build_scheduler(repository, scraper, clock, batch_size=5)

    report = asyncio.run(scheduler.run_pass())

    assert report.processed == 5
    assert report.count(ItemOutcome.SUCCESS) == 5
    assert [item.entry_id for item in report.items] == [7, 6, 5, 4, 3]
    assert scheduler.last_report is report

    # Refreshed links moved out of the horizon; the rest go next pass.
    second = asyncio.run(scheduler.run_pass())
    assert [item.entry_id for item in second.items] == [2, 1]


def test_entries_outside_horizon_are_left_alone(clock):
    repository = InMemoryCatalogRepository([
        expiring_entry(1, minutes=60 * 5),
        expiring_entry(2, minutes=-10),
        make_entry(3),
    ])
    scraper = FakeScraper()
    scheduler, _ = build_scheduler(repository, scraper, clock)

    report = asyncio.run(scheduler.run_pass())

    assert report.processed == 0
    assert report.error is None
    assert scraper.calls == []


def test_item_failures_do_not_abort_the_pass(clock):
    repository = InMemoryCatalogRepository([
        expiring_entry(1, minutes=10),
        expiring_entry(2, minutes=20),
        expiring_entry(3, minutes=30, kind=EPISODE),
        expiring_entry(4, minutes=40),
    ])
    repository.entries[("movie", 4)].source_identifier = "https://media.example.org/movie.mp4"
    scraper = FakeScraper(
        ScrapeResult(success=False, error="Video unavailable"),
        ScrapeResult(success=True, url=PLUGIN_URL),
        ScrapeResult(success=True, url=REFRESHED_URL),
    )
    scheduler, _ = build_scheduler(repository, scraper, clock)

    report = asyncio.run(scheduler.run_pass())

    outcomes = {item.entry_id: (item.outcome, item.reason) for item in report.items}
    assert outcomes[1] == (ItemOutcome.FAILED, "Video unavailable")
    assert outcomes[2] == (ItemOutcome.SKIPPED, "indirect_url_rejected")
    assert outcomes[3] == (ItemOutcome.SUCCESS, None)
    assert outcomes[4] == (ItemOutcome.SKIPPED, "unresolvable_identifier")
    assert report.items[2].kind == EPISODE


def test_unexpected_item_error_is_recorded_as_failed(clock):
    repository = InMemoryCatalogRepository([expiring_entry(1, minutes=10)])
    scraper = FakeScraper()
    scheduler, _ = build_scheduler(repository, scraper, clock)

    async def boom(entry, wait_for_throttle=False):
        raise KeyError("missing field")

    scheduler._refresh.execute = boom
    report = asyncio.run(scheduler.run_pass())

    assert report.count(ItemOutcome.FAILED) == 1
    assert report.error is None


def test_storage_failure_is_recorded_on_the_pass(clock):
    repository = InMemoryCatalogRepository([expiring_entry(1, minutes=10)])
    repository.fail_reads = True
    scheduler, _ = build_scheduler(repository, FakeScraper(), clock)

    report = asyncio.run(scheduler.run_pass())

    assert report.error == "storage unreachable"
    assert report.processed == 0
    assert report.finished_at is not None


def test_courtesy_delay_and_throttle_waits_between_items(clock):
    repository = InMemoryCatalogRepository([expiring_entry(1, minutes=10), expiring_entry(2, minutes=20)])
    scraper = FakeScraper(
        ScrapeResult(success=True, url=REFRESHED_URL),
        ScrapeResult(success=True, url=REFRESHED_URL),
    )
    scheduler, sleep = build_scheduler(repository, scraper, clock, item_delay_sec=1.0)

    asyncio.run(scheduler.run_pass())

    # 1s courtesy delay is shorter than the 3s throttle, so the second item waits 2s more.
    assert sleep.calls == [1.0, 2, 1.0]
    assert len(scraper.calls) == 2


def test_start_and_stop_lifecycle(clock):
    repository = InMemoryCatalogRepository()
    scheduler, _ = build_scheduler(repository, FakeScraper(), clock, interval_sec=3600)

    async def scenario():
        task = scheduler.start()
        assert scheduler.start() is task
        assert scheduler.state == SchedulerState.RUNNING
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.stop()
        return task

    task = asyncio.run(scenario())

    assert task.done()
    assert scheduler.state == SchedulerState.STOPPED
    assert scheduler.last_report is not None
    assert scheduler.last_report.processed == 0


class FlakyCatalogRepository(InMemoryCatalogRepository):
    def __init__(self):
        super().__init__()
        self.scans = 0

    async def find_expiring(self, now, until, limit):
        self.scans += 1
        if self.scans == 1:
            raise RuntimeError("primary stepped down")
        return await super().find_expiring(now, until, limit)


def test_failed_pass_is_retried_on_next_tick(clock):
    repository = FlakyCatalogRepository()
    scheduler, _ = build_scheduler(repository, FakeScraper(), clock, interval_sec=0.01)

    async def scenario():
        scheduler.start()
        for _ in range(200):
            if repository.scans >= 2:
                break
            await asyncio.sleep(0.01)
        state = scheduler.state
        await scheduler.stop()
        return state

    state_while_running = asyncio.run(scenario())

    assert repository.scans >= 2
    assert state_while_running == SchedulerState.RUNNING
    assert scheduler.last_report.error is None
