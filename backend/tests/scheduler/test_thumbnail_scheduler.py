#!/usr/bin/env python3
# backend/tests/scheduler/test_thumbnail_scheduler.py
"""
Tests for ThumbnailScheduler admission, backpressure and dispatch.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from imagestore.enums import QueueStatus
from imagestore.exceptions import (
    ExternalProcessorFailure,
    JobValidationError,
    PhotoOperationError,
)
from imagestore.models.image_model import ImageUpload
from imagestore.models.job_model import ProcessorResponse, QueueJob
from imagestore.services.catalog_service import CatalogService
from imagestore.workers.import_worker import ImportWorker
from imagestore.workers.thumbnail_worker import ThumbnailScheduler


def echo_response(request):
    """Processor answer for a request, as the real service would send it."""
    return ProcessorResponse(
        pathname=request.pathname,
        outputDir="/thumbs/front-door",
        commands=[
            {"filename": c.filename, "specname": c.specname} for c in request.commands
        ],
    )


class GatedProcessor:
    """Processor double that holds every call until released."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.active = 0
        self.peak = 0
        self.calls = []

    async def submit_job(self, request):
        self.calls.append(request)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.gate.wait()
        finally:
            self.active -= 1
        return echo_response(request)


@pytest.fixture
def catalog(settings, fake_redis):
    return CatalogService(settings, redis_client=fake_redis)


@pytest.fixture
def processor():
    processor = Mock()
    processor.submit_job = AsyncMock(side_effect=echo_response)
    return processor


@pytest.fixture
def scheduler(settings, mock_dal, catalog, processor):
    return ThumbnailScheduler(settings, mock_dal, catalog, processor)


async def stored_job(catalog, camera="front-door"):
    record = await catalog.store_image(ImageUpload(version="1", camera=camera), b"jpeg")
    return record, ImportWorker.job_from_record(record)


@pytest.mark.scheduler
class TestAdmission:
    @pytest.mark.asyncio
    async def test_collects_every_violation(self, scheduler):
        with pytest.raises(JobValidationError) as exc_info:
            await scheduler.queue_job(QueueJob(key="image:meta:x:1"))

        assert exc_info.value.violations == [
            "Pathname not specified.",
            "Camera not specified.",
            "Image date not specified.",
        ]
        assert scheduler.pending == 0
        assert scheduler.queued == 0

    @pytest.mark.asyncio
    async def test_violation_messages_for_bad_values(self, scheduler, tmp_path):
        job = QueueJob(
            key="image:meta:ghost:1",
            pathname=str(tmp_path / "missing.jpg"),
            camera="ghost",
            date="yesterday",
        )

        with pytest.raises(JobValidationError) as exc_info:
            await scheduler.queue_job(job)

        violations = exc_info.value.violations
        assert len(violations) == 3
        assert violations[0] == f'File "{tmp_path / "missing.jpg"}" does not exist or is not a regular file.'
        assert violations[1] == 'Camera "ghost" unknown.'
        assert "not a date" in violations[2]

    @pytest.mark.asyncio
    async def test_directory_is_not_a_regular_file(self, scheduler, tmp_path):
        job = QueueJob(
            key="k", pathname=str(tmp_path), camera="front-door", date=datetime.now(timezone.utc)
        )

        with pytest.raises(JobValidationError) as exc_info:
            await scheduler.queue_job(job)
        assert len(exc_info.value.violations) == 1

    @pytest.mark.asyncio
    async def test_valid_job_is_dispatched(self, scheduler, catalog, processor):
        _, job = await stored_job(catalog)

        await scheduler.queue_job(job)
        await scheduler.wait_idle()

        processor.submit_job.assert_awaited_once()
        assert scheduler.pending == 0


@pytest.mark.scheduler
class TestBackpressure:
    @pytest.mark.asyncio
    async def test_status_tracks_queued_plus_pending(self, settings, mock_dal, catalog):
        gated = GatedProcessor()
        scheduler = ThumbnailScheduler(settings, mock_dal, catalog, gated)
        jobs = [(await stored_job(catalog))[1] for _ in range(6)]

        assert scheduler.queue_status() is QueueStatus.OPEN
        for job in jobs[:5]:
            await scheduler.queue_job(job)

        # 2 in flight, 3 queued
        assert scheduler.in_flight == 2
        assert scheduler.queued == 3
        assert scheduler.queue_status() is QueueStatus.OPEN
        assert scheduler.open_capacity() == 1

        await scheduler.queue_job(jobs[5])
        assert scheduler.queued == 4
        assert scheduler.queue_status() is QueueStatus.PAUSED
        assert scheduler.open_capacity() == 0

        gated.gate.set()
        await scheduler.wait_idle()
        assert scheduler.queue_status() is QueueStatus.OPEN

    @pytest.mark.asyncio
    async def test_pending_jobs_count_toward_pause(self, settings, catalog, mock_dal, processor):
        release = asyncio.Event()

        async def slow_camera_exists(name):
            await release.wait()
            return True

        mock_dal.camera_exists = AsyncMock(side_effect=slow_camera_exists)
        scheduler = ThumbnailScheduler(settings, mock_dal, catalog, processor)
        jobs = [(await stored_job(catalog))[1] for _ in range(4)]

        submissions = [asyncio.create_task(scheduler.queue_job(job)) for job in jobs]
        await asyncio.sleep(0.05)

        assert scheduler.pending == 4
        assert scheduler.queue_status() is QueueStatus.PAUSED
        assert all(scheduler.is_tracking(job.key) for job in jobs)

        release.set()
        await asyncio.gather(*submissions)
        await scheduler.wait_idle()
        assert scheduler.pending == 0
        assert scheduler.queue_status() is QueueStatus.OPEN

    @pytest.mark.asyncio
    async def test_queue_job_never_refuses_when_paused(self, settings, mock_dal, catalog):
        gated = GatedProcessor()
        scheduler = ThumbnailScheduler(settings, mock_dal, catalog, gated)
        jobs = [(await stored_job(catalog))[1] for _ in range(10)]

        for job in jobs:
            await scheduler.queue_job(job)

        assert scheduler.queued == 8
        assert scheduler.in_flight == 2
        gated.gate.set()
        await scheduler.wait_idle()

    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_max_threads(self, settings, mock_dal, catalog):
        gated = GatedProcessor()
        scheduler = ThumbnailScheduler(settings, mock_dal, catalog, gated)
        jobs = [(await stored_job(catalog))[1] for _ in range(12)]

        await asyncio.gather(*(scheduler.queue_job(job) for job in jobs))
        assert scheduler.in_flight == settings.max_image_threads

        gated.gate.set()
        await scheduler.wait_idle()

        assert gated.peak == settings.max_image_threads
        assert len(gated.calls) == 12
        assert scheduler.processed_jobs_total == 12


@pytest.mark.scheduler
class TestDispatch:
    @pytest.mark.asyncio
    async def test_successful_job_creates_photo_and_removes_record(
        self, scheduler, catalog, mock_dal, processor
    ):
        record, job = await stored_job(catalog)

        await scheduler.queue_job(job)
        await scheduler.wait_idle()

        request = processor.submit_job.await_args.args[0]
        assert request.pathname == record.path
        assert {c.specname for c in request.commands} == {"small", "large"}
        small = next(c for c in request.commands if c.specname == "small")
        assert small.filename == f"{record.event}-small.jpg"
        assert small.model_dump()["width"] == 160

        photo = mock_dal.create_photo.await_args.args[0]
        assert photo.camera == "front-door"
        assert photo.date == record.event_date
        assert photo.media_type == "image/jpeg"
        assert photo.filename == record.path
        assert sorted((t.spec, t.filename) for t in photo.thumbnails) == [
            ("large", f"/thumbs/front-door/{record.event}-large.jpg"),
            ("small", f"/thumbs/front-door/{record.event}-small.jpg"),
        ]
        assert await catalog.load_image(record.metadata_key) is None
        assert scheduler.in_flight == 0
        assert scheduler.processed_jobs_total == 1

    @pytest.mark.asyncio
    async def test_processor_failure_drops_job(self, scheduler, catalog, mock_dal, processor):
        record, job = await stored_job(catalog)
        processor.submit_job.side_effect = ExternalProcessorFailure("status 500", status=500)

        await scheduler.queue_job(job)
        await scheduler.wait_idle()

        mock_dal.create_photo.assert_not_awaited()
        assert await catalog.load_image(record.metadata_key) == record
        assert scheduler.in_flight == 0
        assert scheduler.failed_jobs_total == 1
        assert scheduler.retry_manager.is_deferred(record.metadata_key)

    @pytest.mark.asyncio
    async def test_processor_failure_frees_slot_for_next_queued_job(
        self, settings, mock_dal, catalog
    ):
        settings.max_image_threads = 1
        release_first = asyncio.Event()
        calls = []

        async def submit_job(request):
            calls.append(request.pathname)
            if len(calls) == 1:
                await release_first.wait()
                raise ExternalProcessorFailure("status 500", status=500)
            return echo_response(request)

        processor = Mock()
        processor.submit_job = AsyncMock(side_effect=submit_job)
        scheduler = ThumbnailScheduler(settings, mock_dal, catalog, processor)
        first_record, first = await stored_job(catalog)
        second_record, second = await stored_job(catalog)

        await scheduler.queue_job(first)
        await scheduler.queue_job(second)
        await asyncio.sleep(0)
        assert scheduler.in_flight == 1
        assert scheduler.queued == 1
        assert calls == [first_record.path]

        release_first.set()
        await scheduler.wait_idle()

        assert calls == [first_record.path, second_record.path]
        assert scheduler.failed_jobs_total == 1
        assert scheduler.processed_jobs_total == 1
        assert scheduler.in_flight == 0
        assert scheduler.queued == 0
        assert await catalog.load_image(first_record.metadata_key) == first_record
        assert await catalog.load_image(second_record.metadata_key) is None
        mock_dal.create_photo.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_record(self, scheduler, catalog, mock_dal):
        record, job = await stored_job(catalog)
        mock_dal.create_photo.side_effect = PhotoOperationError("insert failed")

        await scheduler.queue_job(job)
        await scheduler.wait_idle()

        assert await catalog.load_image(record.metadata_key) == record
        assert scheduler.failed_jobs_total == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_frees_slot(self, scheduler, catalog, processor):
        _, first = await stored_job(catalog)
        _, second = await stored_job(catalog)
        processor.submit_job.side_effect = RuntimeError("bug")

        await scheduler.queue_job(first)
        await scheduler.wait_idle()
        processor.submit_job.side_effect = echo_response
        await scheduler.queue_job(second)
        await scheduler.wait_idle()

        assert scheduler.in_flight == 0
        assert scheduler.failed_jobs_total == 1
        assert scheduler.processed_jobs_total == 1

    @pytest.mark.asyncio
    async def test_cleanup_cancels_in_flight(self, settings, mock_dal, catalog):
        gated = GatedProcessor()
        scheduler = ThumbnailScheduler(settings, mock_dal, catalog, gated)
        await scheduler.start()
        for _ in range(3):
            await scheduler.queue_job((await stored_job(catalog))[1])

        await scheduler.stop()

        assert scheduler.in_flight == 0
        assert scheduler.queued == 0
        mock_dal.create_photo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_report(self, scheduler):
        status = scheduler.get_status()

        assert status["name"] == "ThumbnailScheduler"
        assert status["status"] == "open"
        assert status["max_threads"] == 2
        assert status["max_queue"] == 4
        assert status["in_flight_keys"] == []
