# backend/imagestore/workers/mixins/retry_manager.py
"""
Retry Manager for processor failures.

Keeps an in-memory ledger of catalog keys whose processor call failed, so
the importer can tell "never submitted" apart from "submitted and failed"
and hold failed keys back with exponential backoff instead of resubmitting
them on every scan.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List

from loguru import logger


@dataclass
class FailureEntry:
    failures: int
    last_error: str
    retry_at: float


class RetryManager:
    """
    Manages exponential backoff for keys whose jobs failed.

    Features:
    - Configurable failure limit and backoff delays
    - Delay indexed by failure count, last delay reused once exhausted
    - Keys past the limit stay deferred at the last delay; the catalog record
      is never removed, so an operator can still recover the image
    """

    def __init__(
        self,
        max_retries: int,
        retry_delays: List[float],
        worker_name: str = "Worker",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize retry manager.

        Args:
            max_retries: Failures after which a key is reported as exhausted
            retry_delays: Delay seconds for each failure (e.g., [30, 120, 600])
            worker_name: Name of the worker for logging purposes
            clock: Monotonic time source
        """
        self.max_retries = max_retries
        self.retry_delays = retry_delays
        self.worker_name = worker_name
        self._clock = clock
        self._ledger: Dict[str, FailureEntry] = {}

        # Validate configuration
        if max_retries <= 0:
            raise ValueError("max_retries must be greater than 0")
        if not retry_delays:
            raise ValueError("retry_delays cannot be empty")
        if any(delay <= 0 for delay in retry_delays):
            raise ValueError("All retry delays must be positive")

    def get_retry_delay(self, failure_count: int) -> float:
        """
        Get the delay in seconds after the given number of failures.

        Args:
            failure_count: Failures recorded so far (1-based)

        Returns:
            Delay in seconds before the key may be submitted again
        """
        if failure_count <= 0:
            return self.retry_delays[0]
        delay_index = min(failure_count - 1, len(self.retry_delays) - 1)
        return self.retry_delays[delay_index]

    def record_failure(self, key: str, error_message: str) -> float:
        """
        Record a failed job and defer its key.

        Returns:
            Seconds the key is deferred for
        """
        entry = self._ledger.get(key)
        failures = entry.failures + 1 if entry else 1
        if failures >= self.max_retries:
            delay = self.retry_delays[-1]
        else:
            delay = self.get_retry_delay(failures)
        self._ledger[key] = FailureEntry(
            failures=failures, last_error=error_message, retry_at=self._clock() + delay
        )

        if failures >= self.max_retries:
            logger.error(
                f"[{self.worker_name}] Job {key} exhausted after {failures} failures, "
                f"holding it back {delay:.0f}s at a time: {error_message}"
            )
        else:
            logger.warning(
                f"[{self.worker_name}] Job {key} failed (attempt {failures}), "
                f"retry in {delay:.0f}s: {error_message}"
            )
        return delay

    def record_success(self, key: str) -> None:
        if self._ledger.pop(key, None) is not None:
            logger.info(f"[{self.worker_name}] Job {key} succeeded after earlier failures")

    def is_deferred(self, key: str) -> bool:
        entry = self._ledger.get(key)
        return entry is not None and self._clock() < entry.retry_at

    def is_exhausted(self, key: str) -> bool:
        entry = self._ledger.get(key)
        return entry is not None and entry.failures >= self.max_retries

    def failure_count(self, key: str) -> int:
        entry = self._ledger.get(key)
        return entry.failures if entry else 0

    def deferred_count(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._ledger.values() if now < entry.retry_at)

    def get_retry_info(self, key: str) -> dict:
        """
        Get retry information for a key.

        Returns:
            Dictionary containing failure count and timing information
        """
        entry = self._ledger.get(key)
        if entry is None:
            return {"key": key, "failures": 0, "deferred": False, "exhausted": False}
        return {
            "key": key,
            "failures": entry.failures,
            "last_error": entry.last_error,
            "deferred": self._clock() < entry.retry_at,
            "retry_in_seconds": max(entry.retry_at - self._clock(), 0.0),
            "exhausted": entry.failures >= self.max_retries,
        }

    def get_stats(self) -> dict:
        return {
            "worker_name": self.worker_name,
            "max_retries": self.max_retries,
            "retry_delays": self.retry_delays,
            "tracked_keys": len(self._ledger),
            "deferred_keys": self.deferred_count(),
        }

    def __repr__(self) -> str:
        return (
            f"RetryManager(worker='{self.worker_name}', "
            f"max_retries={self.max_retries}, "
            f"delays={self.retry_delays})"
        )
