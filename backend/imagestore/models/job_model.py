# backend/imagestore/models/job_model.py
"""
Thumbnail job models.

QueueJob is deliberately a plain dataclass: admission validation has to see
malformed values as they were submitted so it can report every violation,
which pydantic coercion would turn into a construction error.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class QueueJob:
    """In-flight scheduling unit, keyed by the catalog metadata key."""

    key: str
    pathname: Optional[str] = None
    camera: Optional[str] = None
    date: Any = None


class ProcessorCommand(BaseModel):
    """One thumbnail command sent to the image processor."""

    filename: str
    specname: str

    model_config = ConfigDict(extra="allow")


class ProcessorRequest(BaseModel):
    pathname: str
    commands: List[ProcessorCommand] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ProcessorResultCommand(BaseModel):
    filename: str
    specname: str

    model_config = ConfigDict(extra="ignore")


class ProcessorResponse(BaseModel):
    """Body of a successful processor reply."""

    pathname: str
    output_dir: str = Field(..., alias="outputDir")
    commands: List[ProcessorResultCommand] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SchedulerStatus(BaseModel):
    status: str
    queued: int
    pending: int
    in_flight: int
    max_threads: int
    max_queue: int
    processed_jobs_total: int = 0
    failed_jobs_total: int = 0
    deferred_jobs: int = 0
    in_flight_keys: Optional[List[str]] = None
