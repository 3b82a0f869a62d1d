"""
ordermgmt_jobs.domain -- Pure types and the job state machine.

ZERO I/O.
"""

from ordermgmt_jobs.domain.transitions import (
    ACTIVE,
    OCCUPYING,
    RUNNABLE,
    TERMINAL,
    can_transition,
    require_transition,
)
from ordermgmt_jobs.domain.types import (
    ItemStatus,
    Job,
    JobErrorEntry,
    JobProgress,
    JobRunResult,
    JobStatus,
    JobType,
    SweepFix,
    SweepReport,
    TickReport,
)

__all__ = [
    "ACTIVE",
    "OCCUPYING",
    "RUNNABLE",
    "TERMINAL",
    "ItemStatus",
    "Job",
    "JobErrorEntry",
    "JobProgress",
    "JobRunResult",
    "JobStatus",
    "JobType",
    "SweepFix",
    "SweepReport",
    "TickReport",
    "can_transition",
    "require_transition",
]
