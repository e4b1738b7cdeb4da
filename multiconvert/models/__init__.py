"""Data models for the application."""

from multiconvert.models.conversion import ConversionRequest, ConversionResult, FailureCategory
from multiconvert.models.job import Job, JobFamily, JobStatus

__all__ = [
    "Job",
    "JobFamily",
    "JobStatus",
    "ConversionRequest",
    "ConversionResult",
    "FailureCategory",
]
