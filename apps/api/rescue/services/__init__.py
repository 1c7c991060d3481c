"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from rescue.services import job_service
from rescue.services import intake_service

__all__ = [
    "job_service",
    "intake_service",
]
