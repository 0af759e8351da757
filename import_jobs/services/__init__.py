"""
import_jobs.services -- Stateful services: store, activity log, driver, runner.
"""

from import_jobs.services.activity import ActivityLog
from import_jobs.services.driver import ImportJobDriver
from import_jobs.services.job_store import ImportJobStore
from import_jobs.services.runner import ImportJobRunner, JobLocks

__all__ = [
    "ActivityLog",
    "ImportJobDriver",
    "ImportJobRunner",
    "ImportJobStore",
    "JobLocks",
]
