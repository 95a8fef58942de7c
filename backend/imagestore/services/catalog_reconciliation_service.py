# backend/imagestore/services/catalog_reconciliation_service.py
"""
Catalog Reconciliation Service - consistency sweep over the whole catalog.

Responsibilities:
- Rename files stored with the legacy ``.undefined`` extension to their real
  format and rewrite the metadata hash to match
- Detect paths referenced by more than one metadata record (detection only,
  duplicates need an operator)
- Report progress while running and a summary at the end

The sweep is safe to run while uploads continue and is idempotent: on an
already corrected catalog every record takes the "not needing rename" branch.
"""

import asyncio
import time
from collections import defaultdict
from pathlib import PurePath
from typing import Dict, List, Optional, Set

from loguru import logger

from ..config import Settings
from ..constants import DEFAULT_IMAGE_FORMAT, LEGACY_PLACEHOLDER_EXTENSION
from ..exceptions import ReconciliationInconsistency, TransientStoreError
from ..models.image_model import ImageRecord, ReconciliationReport
from ..utils.file_helpers import is_regular_file, rename_file, replace_extension
from .catalog_service import CatalogService


def needs_extension_fix(record: ImageRecord) -> bool:
    return PurePath(record.path).suffix.lstrip(".") == LEGACY_PLACEHOLDER_EXTENSION


def corrected_format(record: ImageRecord) -> str:
    if record.format and record.format != LEGACY_PLACEHOLDER_EXTENSION:
        return record.format
    return DEFAULT_IMAGE_FORMAT


class CatalogReconciliationService:
    def __init__(self, catalog: CatalogService, settings: Settings) -> None:
        self.catalog = catalog
        self.progress_interval = settings.reconcile_progress_interval
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def _report_progress(self, report: ReconciliationReport, started: float) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            logger.info(
                f"Catalog sweep in progress ({time.monotonic() - started:.0f}s): "
                f"{report.checked} checked, {report.corrected} corrected, "
                f"{report.renamed} renamed, {report.errors} errors"
            )

    async def _correct_record(
        self, key: str, record: ImageRecord, report: ReconciliationReport
    ) -> Optional[ImageRecord]:
        """
        Fix one legacy record. Returns the record as it stands afterwards, or
        None when the renamed file could not be found.
        """
        if not needs_extension_fix(record):
            report.not_needing_rename += 1
            return record

        image_format = corrected_format(record)
        new_path = replace_extension(record.path, image_format)

        # a previous sweep may have renamed the file but died before the rewrite
        if await is_regular_file(record.path):
            try:
                await rename_file(record.path, new_path)
            except OSError as e:
                report.errors += 1
                logger.warning(f"Could not rename {record.path} -> {new_path}: {e}")
                return None
            report.renamed += 1
            logger.info(f"Renamed {record.path} -> {new_path}")

        if not await is_regular_file(new_path):
            report.errors += 1
            logger.warning(f"Renamed file {new_path} for {key} not found")
            return None

        corrected = record.model_copy(
            update={
                "path": new_path,
                "filename": PurePath(new_path).name,
                "format": image_format,
            }
        )
        await self.catalog.replace_image(key, corrected)
        report.corrected += 1
        return corrected

    async def correct_images(self) -> ReconciliationReport:
        """
        Run one full consistency sweep.

        Per-record failures are counted as errors and the sweep moves on;
        only a failure of the key scan itself aborts it.

        Returns:
            ReconciliationReport with the final counters
        """
        async with self._lock:
            report = ReconciliationReport()
            paths: Dict[str, List[str]] = defaultdict(list)
            seen: Set[str] = set()
            started = time.monotonic()
            logger.info("Catalog sweep started")

            progress = asyncio.create_task(self._report_progress(report, started))
            try:
                async for key in self.catalog.iter_metadata_keys():
                    if key in seen:
                        continue
                    seen.add(key)
                    try:
                        record = await self.catalog.load_image(key)
                        if record is None:
                            continue
                        report.checked += 1
                        record = await self._correct_record(key, record, report)
                    except (TransientStoreError, OSError) as e:
                        report.errors += 1
                        logger.warning(f"Catalog sweep failed on {key}: {e}")
                        continue
                    if record is not None:
                        paths[record.path].append(key)
            finally:
                progress.cancel()
                await asyncio.gather(progress, return_exceptions=True)

            for path, keys in paths.items():
                if len(keys) > 1:
                    inconsistency = ReconciliationInconsistency(path, sorted(keys))
                    report.errors += 1
                    report.duplicates[path] = inconsistency.keys
                    logger.error(f"Duplicate catalog records: {inconsistency} ({', '.join(inconsistency.keys)})")

            report.duration_seconds = time.monotonic() - started
            logger.info(
                f"Catalog sweep finished in {report.duration_seconds:.1f}s: "
                f"{report.checked} checked, {report.corrected} corrected, "
                f"{report.renamed} renamed, {report.not_needing_rename} not needing rename, "
                f"{report.errors} errors"
            )
            return report
