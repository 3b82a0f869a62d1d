"""
ordermgmt_jobs.tasks -- Task protocol, registry, and the built-in job types.

base.py imports nothing from the stores it drives.  Each task module imports
the repositories and services of the area it works on.
"""

from ordermgmt_jobs.tasks.base import (
    BatchCursor,
    ItemOutcome,
    JobItem,
    JobTask,
    RetriesFailedItems,
    TaskContext,
    TaskRegistry,
)

__all__ = [
    "BatchCursor",
    "ItemOutcome",
    "JobItem",
    "JobTask",
    "RetriesFailedItems",
    "TaskContext",
    "TaskRegistry",
]
