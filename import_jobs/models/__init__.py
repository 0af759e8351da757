"""
import_jobs.models -- ORM models for import job persistence.

Architecture: import_jobs/models. Imports from import_kernel.db.base only.
"""

from import_jobs.models.job import ImportCandidateModel, ImportJobModel

__all__ = [
    "ImportCandidateModel",
    "ImportJobModel",
]
