"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from rescue.db.enums import JobType
from rescue.jobs.handlers import ai

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.INTAKE_AI.value: ai.process_intake_ai,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
