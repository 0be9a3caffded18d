"""Fixed-interval collection scheduler."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .collectors.base import BaseCollector
from .services.snapshot_store import SnapshotStore
from .utils.metrics import CycleReport
from .utils.status import CycleState


class CollectionScheduler:
    """
    Drives collection cycles on a fixed interval.

    State machine ``IDLE -> COLLECTING -> IDLE``. A tick arriving while a
    cycle is still collecting is dropped and counted in ``skipped_cycles``,
    so cycles never overlap and publishes happen in cycle order.
    """

    JOB_ID = "collection_cycle"

    def __init__(
        self,
        collector: BaseCollector,
        store: SnapshotStore,
        interval_sec: float,
        deadline_sec: Optional[float] = None,
        logger: logging.Logger = None
    ):
        """
        Initialize scheduler.

        Args:
            collector: Collector producing candidate snapshots
            store: Store receiving published snapshots
            interval_sec: Seconds between ticks
            deadline_sec: Cycle deadline, capped at the interval
            logger: Optional logger instance
        """
        self.collector = collector
        self.store = store
        self.interval_sec = interval_sec
        self.deadline_sec = min(deadline_sec or interval_sec, interval_sec)
        self.logger = (logger or logging.getLogger(__name__)).getChild("CollectionScheduler")

        self.state = CycleState.IDLE
        self.completed_cycles = 0
        self.skipped_cycles = 0
        self.last_report: Optional[CycleReport] = None

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._cycle_task: Optional[asyncio.Task] = None

    async def run_cycle(self) -> Optional[CycleReport]:
        """
        Run one cycle now and wait for it.

        Returns:
            CycleReport, or None if a cycle was already running
        """
        if not self._begin():
            return None
        return await self._execute()

    async def on_tick(self):
        """Timer callback: start a cycle in the background unless one is running."""
        if not self._begin():
            return
        self._cycle_task = asyncio.ensure_future(self._execute())

    async def wait_idle(self):
        """Wait for the background cycle, if any, to finish."""
        if self._cycle_task is not None and not self._cycle_task.done():
            await asyncio.gather(self._cycle_task, return_exceptions=True)

    def start(self):
        """Start ticking, the first tick immediately."""
        if self._scheduler is not None and self._scheduler.running:
            self.logger.warning("Scheduler is already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.on_tick,
            trigger=IntervalTrigger(seconds=self.interval_sec),
            id=self.JOB_ID,
            name='Vault collection cycle',
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(1, int(self.interval_sec))
        )
        self._scheduler.start()
        self.logger.info(f"Scheduler started with interval {self.interval_sec}s")

    def shutdown(self):
        """Stop ticking and cancel the in-flight cycle."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        if self._cycle_task is not None and not self._cycle_task.done():
            self._cycle_task.cancel()
        self.logger.info("Scheduler stopped")

    def _begin(self) -> bool:
        if self.state.is_busy():
            self.skipped_cycles += 1
            self.logger.warning(
                f"Previous cycle still running after {self.interval_sec}s, "
                f"skipping tick ({self.skipped_cycles} skipped so far)"
            )
            return False
        self.state = CycleState.COLLECTING
        return True

    def _generation_time(self) -> float:
        """
        Wall-clock start of the next cycle, never earlier than the published snapshot.

        A clock stepped backwards (NTP, VM resume) would otherwise make every
        new snapshot look older than the current one and stop publishing.
        """
        now = time.time()
        published_at = self.store.current().generated_at
        if now < published_at:
            self.logger.warning(
                f"Clock is {published_at - now:.3f}s behind the published snapshot, "
                f"stamping cycle with {published_at:.3f}"
            )
            return published_at
        return now

    async def _execute(self) -> Optional[CycleReport]:
        started = time.monotonic()
        started_at = self._generation_time()
        try:
            report = await self.collector.collect(started_at=started_at, deadline=self.deadline_sec)
            published = self.store.publish(report.snapshot)

            self.last_report = report
            self.completed_cycles += 1

            if report.error:
                self.logger.error(f"Cycle failed: {report.error}")
            elif report.all_failed:
                self.logger.error(f"All {len(report.results)} target(s) failed this cycle")
            self.logger.info(
                f"Cycle {self.completed_cycles} finished in {time.monotonic() - started:.2f}s, "
                f"{len(report.succeeded)} ok / {len(report.failed)} failed, "
                f"snapshot {'published' if published else 'retained'}"
            )
            return report

        except Exception as e:
            self.logger.error(f"Collection cycle crashed: {e}", exc_info=True)
            return None

        finally:
            self.state = CycleState.IDLE
