"""
Job Management Bounded Context

Batch jobs, their lifecycle and counters.
"""

from .entities import Job
from .repositories import JobRepository
from .value_objects import (
    JOB_STATE_MACHINE,
    JobConfig,
    JobProgress,
    JobStatus,
    VoiceSettings,
)

__all__ = [
    "Job",
    "JobRepository",
    "JOB_STATE_MACHINE",
    "JobConfig",
    "JobProgress",
    "JobStatus",
    "VoiceSettings",
]
