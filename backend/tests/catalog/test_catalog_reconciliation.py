#!/usr/bin/env python3
# backend/tests/catalog/test_catalog_reconciliation.py
"""
Tests for the catalog consistency sweep.
"""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from imagestore.exceptions import TransientStoreError
from imagestore.models.image_model import ImageUpload
from imagestore.services.catalog_reconciliation_service import CatalogReconciliationService
from imagestore.services.catalog_service import CatalogService


@pytest.fixture
def catalog(settings, fake_redis):
    return CatalogService(settings, redis_client=fake_redis)


@pytest.fixture
def reconciler(catalog, settings):
    return CatalogReconciliationService(catalog, settings)


def add_legacy_record(fake_redis, settings, suffix, event, image_format=None, write_file=True):
    """Record stored by old uploaders with a ``.undefined`` extension."""
    camera_dir = settings.images_dir / "front-door"
    camera_dir.mkdir(parents=True, exist_ok=True)
    path = camera_dir / f"{event}.undefined"
    if write_file:
        path.write_bytes(b"legacy")
    key = f"image:meta:front-door:{suffix}"
    fields = {
        "v": "0.9",
        "filename": path.name,
        "path": str(path),
        "metadataKey": key,
        "stream": "image:stream:front-door",
        "event": event,
    }
    if image_format:
        fields["format"] = image_format
    fake_redis.hashes[key] = fields
    return key, path


@pytest.mark.catalog
class TestCorrectImages:
    @pytest.mark.asyncio
    async def test_renames_legacy_extension(self, reconciler, catalog, fake_redis, settings):
        key, old_path = add_legacy_record(fake_redis, settings, "a" * 16, "1000-0")

        report = await reconciler.correct_images()

        new_path = old_path.with_suffix(".jpg")
        assert not old_path.exists()
        assert new_path.read_bytes() == b"legacy"
        record = await catalog.load_image(key)
        assert record.path == str(new_path)
        assert record.filename == "1000-0.jpg"
        assert record.format == "jpg"
        assert report.checked == 1
        assert report.corrected == 1
        assert report.renamed == 1
        assert report.errors == 0

    @pytest.mark.asyncio
    async def test_uses_record_format_when_known(self, reconciler, catalog, fake_redis, settings):
        key, old_path = add_legacy_record(
            fake_redis, settings, "b" * 16, "1001-0", image_format="png"
        )

        await reconciler.correct_images()

        assert old_path.with_suffix(".png").exists()
        assert (await catalog.load_image(key)).format == "png"

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, reconciler, catalog, fake_redis, settings):
        await catalog.store_image(ImageUpload(version="1", camera="front-door"), b"new")
        add_legacy_record(fake_redis, settings, "c" * 16, "1002-0")

        first = await reconciler.correct_images()
        snapshot = {k: dict(v) for k, v in fake_redis.hashes.items()}
        second = await reconciler.correct_images()

        assert first.corrected == 1
        assert second.corrected == 0
        assert second.renamed == 0
        assert second.not_needing_rename == 2
        assert second.errors == first.errors
        assert fake_redis.hashes == snapshot

    @pytest.mark.asyncio
    async def test_missing_renamed_file_counts_error(self, reconciler, catalog, fake_redis, settings):
        key, _ = add_legacy_record(fake_redis, settings, "d" * 16, "1003-0", write_file=False)
        other_key, _ = add_legacy_record(fake_redis, settings, "e" * 16, "1004-0")

        report = await reconciler.correct_images()

        assert report.errors == 1
        assert report.corrected == 1
        assert (await catalog.load_image(key)).path.endswith(".undefined")
        assert (await catalog.load_image(other_key)).path.endswith(".jpg")

    @pytest.mark.asyncio
    async def test_completes_interrupted_rename(self, reconciler, catalog, fake_redis, settings):
        """File already renamed by an earlier sweep that died before the rewrite."""
        key, old_path = add_legacy_record(fake_redis, settings, "f" * 16, "1005-0")
        old_path.rename(old_path.with_suffix(".jpg"))

        report = await reconciler.correct_images()

        assert report.renamed == 0
        assert report.corrected == 1
        assert (await catalog.load_image(key)).path == str(old_path.with_suffix(".jpg"))

    @pytest.mark.asyncio
    async def test_detects_duplicates(self, reconciler, fake_redis, catalog):
        record = await catalog.store_image(ImageUpload(version="1", camera="front-door"), b"x")
        duplicate_key = "image:meta:front-door:" + "z" * 16
        fake_redis.hashes[duplicate_key] = {**fake_redis.hashes[record.metadata_key]}
        fake_redis.hashes[duplicate_key]["metadataKey"] = duplicate_key

        first = await reconciler.correct_images()
        second = await reconciler.correct_images()

        assert first.errors == 1
        assert first.duplicates == {
            record.path: sorted([record.metadata_key, duplicate_key])
        }
        assert second.duplicates == first.duplicates
        # detection only
        assert record.metadata_key in fake_redis.hashes
        assert duplicate_key in fake_redis.hashes

    @pytest.mark.asyncio
    async def test_store_failure_on_one_record_does_not_abort(
        self, reconciler, catalog, fake_redis, settings
    ):
        add_legacy_record(fake_redis, settings, "g" * 16, "1006-0")
        add_legacy_record(fake_redis, settings, "h" * 16, "1007-0")

        replace = AsyncMock(side_effect=[TransientStoreError("boom"), None])
        with patch.object(catalog, "replace_image", replace):
            report = await reconciler.correct_images()

        assert report.checked == 2
        assert report.errors == 1
        assert report.corrected == 1

    @pytest.mark.asyncio
    async def test_skips_partially_written_hashes(self, reconciler, fake_redis):
        fake_redis.hashes["image:meta:front-door:" + "p" * 16] = {
            "metadataKey": "image:meta:front-door:" + "p" * 16
        }

        report = await reconciler.correct_images()

        assert report.checked == 0
        assert report.errors == 0

    @pytest.mark.asyncio
    async def test_scan_failure_aborts(self, reconciler, fake_redis):
        fake_redis.fail_on.add("scan")

        with pytest.raises(TransientStoreError):
            await reconciler.correct_images()
        assert not reconciler.is_running
