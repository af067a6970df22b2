"""Scheduling layer: triggers, error handling, jobs and job groups."""

from .error_handling import (
    ErrorHandler,
    ExponentialBackoff,
    Forward,
    HandleAction,
    HandleErrorContext,
    HandleResult,
    LogAndIgnore,
)
from .group import CombinedJobGroup, DisabledJobGroup, JobGroup, JobId, NamedJobGroup
from .job import Job, JobResult, JobStatus
from .trigger import Every, Never, OnceADayAt, Trigger

__all__ = [
    "CombinedJobGroup",
    "DisabledJobGroup",
    "ErrorHandler",
    "Every",
    "ExponentialBackoff",
    "Forward",
    "HandleAction",
    "HandleErrorContext",
    "HandleResult",
    "Job",
    "JobGroup",
    "JobId",
    "JobResult",
    "JobStatus",
    "LogAndIgnore",
    "NamedJobGroup",
    "Never",
    "OnceADayAt",
    "Trigger",
]
