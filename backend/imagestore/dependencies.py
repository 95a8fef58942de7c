# backend/imagestore/dependencies.py
"""
Service container and FastAPI dependency providers.

Every piece of process-wide state (pool, reference snapshot, cache, catalog
directory set, scheduler counters) is owned by one object constructed here
exactly once, started in the application lifespan and torn down on shutdown.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from loguru import logger
from redis.asyncio import Redis

from .config import Settings
from .database.data_access import DataAccessLayer
from .services.catalog_reconciliation_service import CatalogReconciliationService
from .services.catalog_service import CatalogService
from .services.image_processor_client import ImageProcessorClient
from .workers.import_worker import ImportWorker
from .workers.thumbnail_worker import ThumbnailScheduler


class ServiceContainer:
    """
    Builds and owns all services.

    Start order: DAL bootstrap, processor session, scheduler, importer.
    Stop order is the reverse. A BootstrapFailure from start() propagates so
    the entry point can terminate the process.
    """

    def __init__(
        self,
        settings: Settings,
        redis_client: Optional[Redis] = None,
        dal: Optional[DataAccessLayer] = None,
        processor: Optional[ImageProcessorClient] = None,
    ):
        self.settings = settings
        self.dal = dal or DataAccessLayer(settings)
        self.catalog = CatalogService(settings, redis_client=redis_client)
        self.reconciler = CatalogReconciliationService(self.catalog, settings)
        self.processor = processor or ImageProcessorClient(settings)
        self.scheduler = ThumbnailScheduler(settings, self.dal, self.catalog, self.processor)
        self.importer = ImportWorker(settings, self.catalog, self.scheduler)
        self.started = False

    async def start(self) -> None:
        await self.dal.bootstrap()
        await self.processor.connect()
        await self.scheduler.start()
        await self.importer.start()
        self.started = True
        logger.info("Service container started")

    async def stop(self) -> None:
        if self.started:
            await self.importer.stop()
            await self.scheduler.stop()
        await self.processor.close()
        await self.catalog.close()
        await self.dal.close()
        self.started = False
        logger.info("Service container stopped")


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_catalog_service(request: Request) -> CatalogService:
    return get_container(request).catalog


def get_reconciliation_service(request: Request) -> CatalogReconciliationService:
    return get_container(request).reconciler


def get_data_access_layer(request: Request) -> DataAccessLayer:
    return get_container(request).dal


def get_thumbnail_scheduler(request: Request) -> ThumbnailScheduler:
    return get_container(request).scheduler


def get_import_worker(request: Request) -> ImportWorker:
    return get_container(request).importer


CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]
ReconciliationServiceDep = Annotated[
    CatalogReconciliationService, Depends(get_reconciliation_service)
]
DataAccessLayerDep = Annotated[DataAccessLayer, Depends(get_data_access_layer)]
ThumbnailSchedulerDep = Annotated[ThumbnailScheduler, Depends(get_thumbnail_scheduler)]
ImportWorkerDep = Annotated[ImportWorker, Depends(get_import_worker)]
