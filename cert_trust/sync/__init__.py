"""Scheduling and synchronization of certificate imports."""

from cert_trust.sync.change_detector import ChangeDetector, ResourceFingerprint
from cert_trust.sync.controller import SyncController
from cert_trust.sync.job_runner import JobRunner
from cert_trust.sync.models import (
    BuildResult,
    ControllerState,
    ScheduleDiagnostic,
    ScheduleEntry,
    SyncAction,
    SyncResult,
)
from cert_trust.sync.schedule_builder import ScheduleBuilder
from cert_trust.sync.sync_executor import SyncExecutor
from cert_trust.sync.triggers import parse_trigger, validate_trigger

__all__ = [
    "BuildResult",
    "ChangeDetector",
    "ControllerState",
    "JobRunner",
    "ResourceFingerprint",
    "ScheduleBuilder",
    "ScheduleDiagnostic",
    "ScheduleEntry",
    "SyncAction",
    "SyncController",
    "SyncExecutor",
    "SyncResult",
    "parse_trigger",
    "validate_trigger",
]
