# backend/imagestore/workers/thumbnail_worker.py
"""
Thumbnail Scheduler - bounded-concurrency dispatcher for thumbnail jobs.

Flow per job:
- queue_job() validates the job (collecting every violation) and appends it
  to the FIFO work queue
- check_queue() starts jobs while fewer than ``max_image_threads`` are in
  flight
- each job POSTs to the image processor; on success the Photo is persisted
  and the catalog record removed, otherwise the job is dropped and the image
  stays in the catalog for the importer to rediscover

Backpressure: the scheduler is OPEN while ``queued + pending`` is below
``max_image_queue`` and PAUSED otherwise. The status is advisory; queue_job()
never refuses a call.

No job state is persisted. A restart loses queued and in-flight jobs, which
the importer finds again in the catalog.
"""

import asyncio
import itertools
import os
from collections import Counter, deque
from datetime import datetime
from pathlib import PurePath
from typing import Any, Deque, Dict, List, Optional, Set

from loguru import logger

from ..config import Settings
from ..constants import DEFAULT_MEDIA_TYPE
from ..database.data_access import DataAccessLayer
from ..enums import JobOutcome, QueueStatus
from ..exceptions import (
    DatabaseOperationError,
    ExternalProcessorFailure,
    JobValidationError,
    TransientStoreError,
)
from ..models.job_model import (
    ProcessorCommand,
    ProcessorRequest,
    ProcessorResponse,
    QueueJob,
    SchedulerStatus,
)
from ..models.photo_model import Photo, Thumbnail
from ..services.catalog_service import CatalogService
from ..services.image_processor_client import ImageProcessorClient
from ..utils.file_helpers import is_regular_file
from .base_worker import BaseWorker
from .mixins.retry_manager import RetryManager


class ThumbnailScheduler(BaseWorker):
    def __init__(
        self,
        settings: Settings,
        dal: DataAccessLayer,
        catalog: CatalogService,
        processor: ImageProcessorClient,
        retry_manager: Optional[RetryManager] = None,
    ):
        super().__init__(name="ThumbnailScheduler")
        self.dal = dal
        self.catalog = catalog
        self.processor = processor
        self.max_threads = settings.max_image_threads
        self.max_queue = settings.max_image_queue
        self.retry_manager = retry_manager or RetryManager(
            max_retries=settings.job_max_failures,
            retry_delays=settings.job_retry_delays,
            worker_name=self.name,
        )

        self._work_queue: Deque[QueueJob] = deque()
        self._pending = 0
        self._pending_keys: Counter = Counter()
        self._in_flight: Dict[int, QueueJob] = {}
        self._sequence = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        self.processed_jobs_total = 0
        self.failed_jobs_total = 0

    @property
    def queued(self) -> int:
        return len(self._work_queue)

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def queue_status(self) -> QueueStatus:
        """OPEN while ``queued + pending`` is below ``max_image_queue``."""
        if self.queued + self.pending >= self.max_queue:
            return QueueStatus.PAUSED
        return QueueStatus.OPEN

    def open_capacity(self) -> int:
        return max(self.max_queue - self.queued - self.pending, 0)

    def _tracked_keys(self) -> Set[str]:
        keys = {job.key for job in self._work_queue}
        keys.update(job.key for job in self._in_flight.values())
        keys.update(key for key, count in self._pending_keys.items() if count > 0)
        return keys

    def tracked_count(self) -> int:
        return self.queued + self.pending + self.in_flight

    def is_tracking(self, key: str) -> bool:
        """True if the key is pending validation, queued or in flight."""
        return key in self._tracked_keys()

    async def validate_job(self, job: QueueJob) -> List[str]:
        """
        Check a job and return every violation found (empty when valid).
        """
        violations: List[str] = []

        if job.pathname:
            if not await is_regular_file(job.pathname):
                violations.append(
                    f'File "{job.pathname}" does not exist or is not a regular file.'
                )
        else:
            violations.append("Pathname not specified.")

        if job.camera:
            if not await self.dal.camera_exists(job.camera):
                violations.append(f'Camera "{job.camera}" unknown.')
        else:
            violations.append("Camera not specified.")

        if job.date is None:
            violations.append("Image date not specified.")
        elif not isinstance(job.date, datetime):
            violations.append(f'Image date "{job.date}" is not a date.')

        return violations

    async def queue_job(self, job: QueueJob) -> None:
        """
        Validate a job and append it to the work queue.

        The job counts as pending while it is validated, so queue_status()
        already sees it.

        Raises:
            JobValidationError: With every violation, if the job is invalid
        """
        self._pending += 1
        self._pending_keys[job.key] += 1
        try:
            violations = await self.validate_job(job)
            if violations:
                self.log_debug(f"Rejected job {job.key}: {violations}")
                raise JobValidationError(violations)
            self._work_queue.append(job)
            self.log_debug(f"Queued job {job.key} ({self.queued} queued)")
        finally:
            self._pending -= 1
            self._pending_keys[job.key] -= 1
            if self._pending_keys[job.key] <= 0:
                del self._pending_keys[job.key]
            self.check_queue()

    def check_queue(self) -> int:
        """
        Start queued jobs while there are free processor slots.

        Returns:
            Number of jobs dispatched
        """
        dispatched = 0
        while not self._closed and self._work_queue and self.in_flight < self.max_threads:
            job = self._work_queue.popleft()
            seq = next(self._sequence)
            self._in_flight[seq] = job
            task = asyncio.create_task(self._process_job(seq, job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched += 1
        return dispatched

    def build_request(self, job: QueueJob) -> ProcessorRequest:
        """One processor command per thumbnail spec."""
        source = PurePath(job.pathname)
        commands = []
        for spec in self.dal.get_thumbnail_specs().values():
            commands.append(
                ProcessorCommand(
                    **{
                        **spec.params,
                        "filename": f"{source.stem}-{spec.name}{source.suffix}",
                        "specname": spec.name,
                    }
                )
            )
        return ProcessorRequest(pathname=job.pathname, commands=commands)

    def build_photo(self, job: QueueJob, response: ProcessorResponse) -> Photo:
        extension = PurePath(job.pathname).suffix.lstrip(".")
        media_type = self.dal.media_type_for_extension(extension) or DEFAULT_MEDIA_TYPE
        return Photo(
            camera=job.camera,
            date=job.date,
            media_type=media_type,
            filename=response.pathname,
            thumbnails=[
                Thumbnail(
                    spec=command.specname,
                    filename=os.path.join(response.output_dir, command.filename),
                )
                for command in response.commands
            ],
        )

    async def _process_job(self, seq: int, job: QueueJob) -> JobOutcome:
        outcome = JobOutcome.PROCESSOR_FAILED
        try:
            response = await self.processor.submit_job(self.build_request(job))
            outcome = JobOutcome.PERSIST_FAILED
            photo_id = await self.dal.create_photo(self.build_photo(job, response))
            await self.catalog.remove_image(job.key)

            outcome = JobOutcome.COMPLETED
            self.processed_jobs_total += 1
            self.retry_manager.record_success(job.key)
            self.log_info(f"Processed {job.key} into photo {photo_id}")
        except ExternalProcessorFailure as e:
            self.failed_jobs_total += 1
            self.retry_manager.record_failure(job.key, str(e))
        except (DatabaseOperationError, TransientStoreError) as e:
            self.failed_jobs_total += 1
            self.log_error(f"Failed to persist results for {job.key}", e)
            self.retry_manager.record_failure(job.key, str(e))
        except Exception as e:
            self.failed_jobs_total += 1
            logger.exception(f"[{self.name}] Unexpected error processing {job.key}")
            self.retry_manager.record_failure(job.key, str(e))
        finally:
            self._in_flight.pop(seq, None)
            self.check_queue()
        return outcome

    async def wait_idle(self) -> None:
        """Wait until the work queue is drained and nothing is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            status=self.queue_status().value,
            queued=self.queued,
            pending=self.pending,
            in_flight=self.in_flight,
            max_threads=self.max_threads,
            max_queue=self.max_queue,
            processed_jobs_total=self.processed_jobs_total,
            failed_jobs_total=self.failed_jobs_total,
            deferred_jobs=self.retry_manager.deferred_count(),
            in_flight_keys=sorted(job.key for job in self._in_flight.values()),
        )

    def get_status(self) -> Dict[str, Any]:
        return {**super().get_status(), **self.status().model_dump()}

    async def initialize(self) -> None:
        self._closed = False
        self.log_info(
            f"Initialized with max_threads={self.max_threads}, max_queue={self.max_queue}"
        )

    async def cleanup(self) -> None:
        """Stop dispatching and cancel jobs still talking to the processor."""
        self._closed = True
        dropped = len(self._work_queue)
        self._work_queue.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.log_info(
            f"Stopped: {len(tasks)} in-flight jobs cancelled, {dropped} queued jobs dropped"
        )
