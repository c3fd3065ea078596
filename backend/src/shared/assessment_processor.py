"""
Quality-assessment batch processor.

Drains up to `max_count` jobs per invocation. Each job is claimed with a
conditional update before any work is done, so concurrent runs (scheduler and
manual trigger) never process the same job twice. One job failing never
aborts the batch.
"""
import time
import uuid
from typing import Any, Callable, Dict, Optional

from shared import assessment_jobs
from shared.config import config
from shared.errors import ChaptursError, ValidationError
from shared.logging import logger
from shared.utils import utc_now
from shared.validation import ValidationOptions


def process_batch(
    max_count: int,
    validator,
    deadline: Optional[float] = None,
    jobs=assessment_jobs,
    clock: Callable[[], float] = time.monotonic
) -> Dict[str, Any]:
    """
    Process one batch of assessment jobs.

    Args:
        max_count: most jobs to attempt in this run
        validator: ContentValidator used for every job
        deadline: `clock()` value after which no further job is claimed;
            defaults to BATCH_TIME_BUDGET_SECONDS from now
        jobs: job store (module-like), injectable for tests
        clock: monotonic clock matching `deadline`

    Returns:
        {'processed': int, 'failed': int, 'remaining': int}
        `remaining` counts jobs still pending after the run.
    """
    if not isinstance(max_count, int) or max_count < 1:
        raise ValidationError('maxCount must be a positive integer')
    if deadline is None:
        deadline = clock() + config.BATCH_TIME_BUDGET_SECONDS

    jobs.release_stale_jobs(utc_now())
    candidates = jobs.list_candidates(max_count)
    logger.info(f"Assessment batch starting with {len(candidates)} candidate jobs")

    processed = 0
    failed = 0
    seen = set()

    for candidate in candidates:
        if clock() >= deadline:
            logger.warning('Assessment batch out of time; leaving remaining jobs for the next run')
            break

        job_id = candidate['jobId']
        if job_id in seen:
            continue
        seen.add(job_id)

        job = jobs.claim_job(job_id, str(uuid.uuid4()), utc_now())
        if job is None:
            logger.info(f"Job {job_id} already claimed elsewhere, skipping")
            continue

        try:
            loaded = jobs.load_job_content(job)
            result = validator.validate(
                loaded['content'],
                ValidationOptions(is_first_chapter=loaded['isFirstChapter']),
                target=loaded['target'],
                current_rating=loaded['currentRating']
            )
            if jobs.mark_done(job, result):
                processed += 1
            else:
                logger.warning(f"Job {job_id} lost its claim before completion")
        except Exception as e:
            logger.exception(f"Assessment job {job_id} failed: {e}")
            failed += 1
            try:
                jobs.mark_failed(job, e)
            except ChaptursError as mark_error:
                # The lease expiry releases the job later
                logger.error(f"Could not record failure of job {job_id}: {mark_error}")

    remaining = jobs.count_pending()
    logger.info(f"Assessment batch finished: processed={processed} failed={failed} remaining={remaining}")
    return {'processed': processed, 'failed': failed, 'remaining': remaining}
