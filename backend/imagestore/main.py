# backend/imagestore/main.py
"""
FastAPI application entry point for imagestore.

The lifespan builds the ServiceContainer: it bootstraps reference data
(terminating the process if that fails), then starts the thumbnail scheduler
and the import worker, and tears everything down on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI
from loguru import logger

from .config import Settings, get_settings
from .dependencies import ServiceContainer
from .exceptions import BootstrapFailure
from .routers import admin_routers as admin
from .routers import image_routers as images
from .utils.logging_config import configure_logging

APPLICATION_VERSION = "1.0.0"


def create_app(
    settings: Optional[Settings] = None,
    container_factory: Callable[[Settings], ServiceContainer] = ServiceContainer,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Handle application startup and shutdown"""
        configure_logging(settings.log_level, settings.log_file)
        logger.info(
            f"Starting imagestore ({settings.environment}) on "
            f"{settings.api_host}:{settings.api_port}"
        )

        container = container_factory(settings)
        try:
            await container.start()
        except BootstrapFailure as e:
            logger.critical(f"Bootstrap failed, exiting: {e}")
            await container.stop()
            raise SystemExit(1) from e
        _app.state.container = container

        yield

        logger.info("Shutting down imagestore")
        await container.stop()

    app = FastAPI(
        title="imagestore",
        description="Camera image ingestion and thumbnail pipeline",
        version=APPLICATION_VERSION,
        lifespan=lifespan,
    )
    app.include_router(images.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "version": APPLICATION_VERSION}

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "imagestore.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
