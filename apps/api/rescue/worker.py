"""
Background worker for processing scheduled jobs.

Usage:
    python -m rescue.worker

The worker polls for pending jobs and processes them.
For production, run this as a separate process (e.g., systemd service, Docker container).
"""

import asyncio
import logging

from rescue.core.config import settings
from rescue.core.structured_logging import build_log_context
from rescue.db.session import SessionLocal
from rescue.jobs.registry import resolve_job_handler
from rescue.services import job_service

logger = logging.getLogger(__name__)


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def run_job(job_id: int, session_factory=SessionLocal) -> None:
    """Claim and run one job in its own session, recording the outcome."""
    with session_factory() as db:
        job = job_service.claim_job(db, job_id)
        if not job:
            logger.info("Job %s already claimed, skipping", job_id)
            return

        try:
            await process_job(db, job)
        except Exception as e:
            db.rollback()
            job = job_service.get_job(db, job_id)
            job_service.mark_job_failed(db, job, e)
            logger.error(
                "Job %s failed: %s (status=%s)",
                job.id,
                type(e).__name__,
                job.status,
                extra=build_log_context(job_id=job.id),
            )
            return

        job_service.mark_job_completed(db, job)
        logger.info("Job %s completed successfully", job.id)


async def run_once(
    session_factory=SessionLocal,
    *,
    batch_size: int | None = None,
    concurrency: int | None = None,
) -> int:
    """Run one polling cycle. Returns the number of jobs picked up."""
    batch_size = batch_size or settings.WORKER_BATCH_SIZE
    semaphore = asyncio.Semaphore(concurrency or settings.WORKER_CONCURRENCY)

    with session_factory() as db:
        job_ids = [job.id for job in job_service.get_pending_jobs(db, limit=batch_size)]

    if job_ids:
        logger.info("Found %d pending jobs", len(job_ids))

    async def _bounded(job_id: int) -> None:
        async with semaphore:
            await run_job(job_id, session_factory)

    await asyncio.gather(*(_bounded(job_id) for job_id in job_ids))
    return len(job_ids)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s, concurrency: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
        settings.WORKER_CONCURRENCY,
    )

    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY not set - intake AI jobs will be discarded")

    while True:
        try:
            await run_once()
        except Exception as e:
            logger.error("Error in worker loop: %s", type(e).__name__, exc_info=True)

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    """Entry point for the worker."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
