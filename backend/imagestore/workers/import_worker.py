# backend/imagestore/workers/import_worker.py
"""
Import Worker - moves catalog records into the thumbnail scheduler.

Every ``import_interval`` seconds one import cycle runs:
- nothing happens while the scheduler is PAUSED
- otherwise up to the scheduler's open capacity of records is loaded from the
  catalog, skipping keys the scheduler already tracks and keys held back
  after processor failures
- each record becomes a QueueJob and is submitted; rejected jobs are logged
  and their keys skipped for ``import_rejection_cooldown`` seconds, so records
  that keep failing admission cannot crowd valid ones out of the scan window

Cycles never overlap. Each one is awaited under a deadline of
``import_timeout`` seconds; a cycle that overruns is cancelled, and its
cancellation finishes, before the next one starts.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from ..config import Settings
from ..enums import QueueStatus
from ..exceptions import DatabaseOperationError, JobValidationError
from ..models.image_model import ImageRecord
from ..models.job_model import QueueJob
from ..services.catalog_service import CatalogService
from ..utils.time_utils import utc_now
from .base_worker import BaseWorker
from .thumbnail_worker import ThumbnailScheduler


class ImportWorker(BaseWorker):
    def __init__(
        self,
        settings: Settings,
        catalog: CatalogService,
        scheduler: ThumbnailScheduler,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(name="ImportWorker")
        self.catalog = catalog
        self.scheduler = scheduler
        self.interval = settings.import_interval
        self.timeout = settings.import_timeout
        self.rejection_cooldown = settings.import_rejection_cooldown
        self._clock = clock
        # key -> clock time until which the importer skips it
        self._rejected: Dict[str, float] = {}

        self._cycle_lock = asyncio.Lock()
        self._cycle_started_at: Optional[float] = None
        self._cycle_started_wall = None
        self._task: Optional[asyncio.Task] = None

        self.cycles_total = 0
        self.timeouts_total = 0
        self.submitted_total = 0
        self.rejected_total = 0

    @staticmethod
    def job_from_record(record: ImageRecord) -> QueueJob:
        return QueueJob(
            key=record.metadata_key,
            pathname=record.path,
            camera=record.camera,
            date=record.event_date,
        )

    def _hold_back(self, key: str) -> None:
        self._rejected[key] = self._clock() + self.rejection_cooldown

    def _expire_rejections(self) -> None:
        now = self._clock()
        for key in [k for k, until in self._rejected.items() if until <= now]:
            del self._rejected[key]

    def is_held_back(self, key: str) -> bool:
        """True while a key that failed admission is in its cooldown."""
        until = self._rejected.get(key)
        return until is not None and until > self._clock()

    async def _submit(self, job: QueueJob) -> bool:
        try:
            await self.scheduler.queue_job(job)
            self._rejected.pop(job.key, None)
            return True
        except JobValidationError as e:
            self.log_warning(f"Job {job.key} rejected: {'; '.join(e.violations)}")
        except DatabaseOperationError as e:
            self.log_error(f"Could not validate job {job.key}", e)
        self._hold_back(job.key)
        return False

    async def import_once(self) -> int:
        """
        Run one import pass.

        Returns:
            Number of jobs accepted by the scheduler
        """
        if self.scheduler.queue_status() is QueueStatus.PAUSED:
            self.log_debug("Scheduler paused, skipping import")
            return 0

        self._expire_rejections()
        capacity = self.scheduler.open_capacity()
        retry_manager = self.scheduler.retry_manager
        # tracked, deferred and held-back keys are still in the catalog and come back from the scan
        limit = (
            capacity
            + self.scheduler.tracked_count()
            + retry_manager.deferred_count()
            + len(self._rejected)
        )
        records = await self.catalog.load_images(limit=limit)

        jobs: List[QueueJob] = []
        for record in records:
            if len(jobs) >= capacity:
                break
            key = record.metadata_key
            if (
                self.scheduler.is_tracking(key)
                or retry_manager.is_deferred(key)
                or self.is_held_back(key)
            ):
                continue
            jobs.append(self.job_from_record(record))

        if not jobs:
            return 0

        results = await asyncio.gather(*(self._submit(job) for job in jobs))
        accepted = sum(1 for ok in results if ok)
        self.submitted_total += accepted
        self.rejected_total += len(jobs) - accepted
        self.log_debug(f"Imported {accepted}/{len(jobs)} jobs")
        return accepted

    async def run_cycle(self) -> Optional[int]:
        """
        Run one import pass under the single-flight guard and deadline.

        Returns:
            Jobs accepted, or None if the cycle was skipped or timed out
        """
        if self._cycle_lock.locked():
            self.log_debug("Import cycle already running, skipping")
            return None

        async with self._cycle_lock:
            self._cycle_started_at = time.monotonic()
            self._cycle_started_wall = utc_now()
            self.cycles_total += 1
            try:
                return await asyncio.wait_for(self.import_once(), self.timeout)
            except asyncio.TimeoutError:
                self.timeouts_total += 1
                self.log_warning(f"Import cycle exceeded {self.timeout}s and was cancelled")
                return None
            finally:
                self._cycle_started_at = None
                self._cycle_started_wall = None

    async def run(self) -> None:
        """Main import loop - runs cycles while the worker is running."""
        self.log_info("Starting import loop")

        while self.running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                self.log_info("Import loop cancelled")
                break
            except Exception as e:
                self.log_error("Unexpected error in import loop", e)

            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                self.log_info("Import loop cancelled")
                break

    async def initialize(self) -> None:
        self._task = asyncio.create_task(self.run())
        self.log_info(f"Initialized with interval={self.interval}s, timeout={self.timeout}s")

    async def cleanup(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        cycle_running_seconds = None
        if self._cycle_started_at is not None:
            cycle_running_seconds = time.monotonic() - self._cycle_started_at
        status.update(
            {
                "interval_seconds": self.interval,
                "timeout_seconds": self.timeout,
                "cycle_in_progress_since": (
                    self._cycle_started_wall.isoformat() if self._cycle_started_wall else None
                ),
                "cycle_running_seconds": cycle_running_seconds,
                "cycles_total": self.cycles_total,
                "timeouts_total": self.timeouts_total,
                "submitted_total": self.submitted_total,
                "rejected_total": self.rejected_total,
                "held_back_jobs": len(self._rejected),
            }
        )
        return status
