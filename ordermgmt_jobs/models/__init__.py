"""Job engine ORM models."""

from ordermgmt_jobs.models.job import JobModel
from ordermgmt_jobs.models.notification import NotificationPlanItemModel

__all__ = ["JobModel", "NotificationPlanItemModel"]
