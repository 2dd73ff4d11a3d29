import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from cinedrive.application.models import (
    CatalogEntry,
    ItemOutcome,
    RefreshItemReport,
    RefreshPassReport,
)
from cinedrive.application.ports.catalog_repository import CatalogRepository
from cinedrive.application.refresh import RefreshVideoUrlUseCase
from cinedrive.core.exceptions import (
    IndirectUrlRejectedError,
    ScrapeFailedError,
    UnresolvableIdentifierError,
)

log = logging.getLogger("cinedrive.url_refresher")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class BackgroundRefreshScheduler:
    """Keeps cached links warm by refreshing the ones about to expire.

    Each pass takes up to ``batch_size`` entries expiring within the
    look-ahead window, soonest first, and refreshes them one at a time
    through the shared scrape throttle, waiting on it instead of failing.
    A courtesy delay follows every entry. Entry failures are recorded in
    the pass report; a failed pass is logged and retried on the next tick.
    """

    def __init__(
        self,
        repository: CatalogRepository,
        refresh: RefreshVideoUrlUseCase,
        interval_sec: float = 3600,
        refresh_before_expiry: timedelta = timedelta(hours=2),
        batch_size: int = 5,
        item_delay_sec: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._refresh = refresh
        self._interval_sec = interval_sec
        self._refresh_before_expiry = refresh_before_expiry
        self._batch_size = batch_size
        self._item_delay_sec = item_delay_sec
        self._clock = clock
        self._sleep = sleep

        self._state = SchedulerState.STOPPED
        self._task: Optional["asyncio.Task[None]"] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.last_report: Optional[RefreshPassReport] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    def start(self) -> "asyncio.Task[None]":
        if self._state == SchedulerState.RUNNING and self._task is not None:
            return self._task

        self._state = SchedulerState.RUNNING
        self._stop_event = asyncio.Event()
        log.info(
            "Background refresh started interval=%ss horizon=%s batch=%d",
            self._interval_sec,
            self._refresh_before_expiry,
            self._batch_size,
        )
        self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._state = SchedulerState.STOPPED
        log.info("Background refresh stopped")

    async def _loop(self) -> None:
        while True:
            await self.run_pass()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_sec)
                break
            except asyncio.TimeoutError:
                continue

    async def run_pass(self) -> RefreshPassReport:
        now = self._clock()
        report = RefreshPassReport(started_at=now)
        try:
            entries = await self._repository.find_expiring(
                now, now + self._refresh_before_expiry, self._batch_size
            )
            if not entries:
                log.info("Background refresh: no URLs need refresh")
            else:
                log.info("Background refresh: found %d URLs to refresh", len(entries))

            for entry in entries[: self._batch_size]:
                report.items.append(await self._refresh_entry(entry))
                await self._sleep(self._item_delay_sec)
        except Exception as exc:
            log.exception("Background refresh pass failed")
            report.error = str(exc)

        report.finished_at = self._clock()
        self.last_report = report
        log.info(
            "Background refresh completed processed=%d success=%d skipped=%d failed=%d",
            report.processed,
            report.count(ItemOutcome.SUCCESS),
            report.count(ItemOutcome.SKIPPED),
            report.count(ItemOutcome.FAILED),
        )
        return report

    async def _refresh_entry(self, entry: CatalogEntry) -> RefreshItemReport:
        if entry.cache_expires_at is not None:
            expires_in = int((entry.cache_expires_at - self._clock()).total_seconds() // 60)
            log.info("Refreshing %s id=%s title=%r expires_in=%dmin", entry.kind, entry.id, entry.title, expires_in)

        def _report(outcome: ItemOutcome, reason: Optional[str] = None) -> RefreshItemReport:
            return RefreshItemReport(
                kind=entry.kind, entry_id=entry.id, title=entry.title, outcome=outcome, reason=reason
            )

        try:
            result = await self._refresh.execute(entry, wait_for_throttle=True)
        except (UnresolvableIdentifierError, IndirectUrlRejectedError) as exc:
            log.warning("Skipped %s id=%s title=%r: %s", entry.kind, entry.id, entry.title, exc.error_kind)
            return _report(ItemOutcome.SKIPPED, exc.error_kind)
        except ScrapeFailedError as exc:
            log.warning("Failed %s id=%s title=%r: %s", entry.kind, entry.id, entry.title, exc.reason)
            return _report(ItemOutcome.FAILED, exc.reason)
        except Exception as exc:
            log.exception("Error refreshing %s id=%s", entry.kind, entry.id)
            return _report(ItemOutcome.FAILED, str(exc))

        log.info("Refreshed %s id=%s title=%r quality=%s", entry.kind, entry.id, entry.title, result.quality)
        return _report(ItemOutcome.SUCCESS)
