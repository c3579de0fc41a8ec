"""Data models for scheduling and synchronization operations."""

from datetime import datetime
from enum import Enum
from typing import Callable

from apscheduler.triggers.base import BaseTrigger
from pydantic import BaseModel, ConfigDict, Field

from cert_trust.models.resources import ObjectKey, ResourceKind


class ControllerState(str, Enum):
    """Lifecycle of a controller process."""

    STOPPED = "stopped"
    BUILDING = "building"
    RUNNING = "running"
    REBUILDING = "rebuilding"
    STOPPING = "stopping"


class ScheduleEntry(BaseModel):
    """One row of the job table: an import bound to its trigger and callback."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    key: ObjectKey = Field(default=..., description="Identity of the import")
    schedule: str = Field(default=..., description="Effective schedule expression")
    trigger: BaseTrigger = Field(default=..., description="Parsed trigger")
    callback: Callable[[], None] = Field(default=..., description="Job body")

    @property
    def job_name(self) -> str:
        return f"import:{self.key}"


class ScheduleDiagnostic(BaseModel):
    """Explains why an import was left out of the job table."""

    key: ObjectKey = Field(default=..., description="Identity of the skipped import")
    schedule: str = Field(default=..., description="Rejected schedule expression")
    error: str = Field(default=..., description="Validation failure message")


class BuildResult(BaseModel):
    """Outcome of a schedule build pass."""

    entries: list[ScheduleEntry] = Field(default_factory=list)
    diagnostics: list[ScheduleDiagnostic] = Field(default_factory=list)

    @property
    def scheduled_keys(self) -> list[ObjectKey]:
        return [entry.key for entry in self.entries]

    @property
    def skipped_keys(self) -> list[ObjectKey]:
        return [diagnostic.key for diagnostic in self.diagnostics]


class SyncAction(str, Enum):
    """What a successful sync did to the store."""

    VERIFIED = "verified"
    CREATED = "created"
    UPDATED = "updated"


class SyncResult(BaseModel):
    """Report of a single export verification or import sync."""

    kind: ResourceKind = Field(default=..., description="Kind of resource that was synced")
    key: ObjectKey = Field(default=..., description="Identity of the export or import")
    action: SyncAction = Field(default=..., description="Effect on the store")
    target: ObjectKey | None = Field(default=None, description="Secret written, if any")
    synced_at: datetime = Field(default=..., description="Sync completion timestamp (UTC)")
    status_stamped: bool = Field(
        default=False, description="Whether the advisory status update succeeded"
    )
