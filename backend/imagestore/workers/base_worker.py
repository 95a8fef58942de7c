# backend/imagestore/workers/base_worker.py
"""
Shared lifecycle for imagestore's long-lived workers.

The service container calls ``start()`` once the data layer is bootstrapped
and ``stop()`` during shutdown. Subclasses put their own setup and teardown
in ``initialize()`` and ``cleanup()``; a worker that needs a background loop
(ImportWorker) creates its task in ``initialize()``, while the
ThumbnailScheduler is driven entirely by ``queue_job`` calls.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from ..utils.time_utils import utc_now


class BaseWorker(ABC):
    """Start/stop bookkeeping and name-prefixed logging for a worker."""

    def __init__(self, name: str):
        self.name = name
        self.running = False
        self.started_at: Optional[datetime] = None

    async def start(self) -> None:
        if self.running:
            return
        logger.info(f"[{self.name}] starting")
        self.running = True
        self.started_at = utc_now()
        await self.initialize()

    async def stop(self) -> None:
        if not self.running:
            return
        logger.info(f"[{self.name}] stopping")
        self.running = False
        await self.cleanup()

    @abstractmethod
    async def initialize(self) -> None:
        """Acquire whatever the worker needs once it is running."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release tasks and resources; called once on stop."""

    def _log(self, level: str, message: str) -> None:
        # depth=2 attributes the record to the caller of log_*
        logger.opt(depth=2).log(level, f"[{self.name}] {message}")

    def log_info(self, message: str) -> None:
        self._log("INFO", message)

    def log_warning(self, message: str) -> None:
        self._log("WARNING", message)

    def log_debug(self, message: str) -> None:
        self._log("DEBUG", message)

    def log_error(self, message: str, error: Optional[Exception] = None) -> None:
        self._log("ERROR", f"{message}: {error}" if error else message)

    def get_status(self) -> Dict[str, Any]:
        """Base status; subclasses merge their counters into it."""
        return {
            "name": self.name,
            "worker_type": type(self).__name__,
            "running": self.running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
