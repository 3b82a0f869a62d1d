"""
ordermgmt_jobs.services -- runner, supervisor and control verbs.
"""

from ordermgmt_jobs.services.control import JobControlService
from ordermgmt_jobs.services.runner import JobRunner
from ordermgmt_jobs.services.supervisor import JobSupervisor

__all__ = [
    "JobControlService",
    "JobRunner",
    "JobSupervisor",
]
