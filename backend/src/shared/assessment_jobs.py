"""
Quality-assessment jobs (AssessmentJobs table).

Lifecycle: pending -> processing -> done | failed.
A failed job is claimed again by later batches until it has used
MAX_ASSESSMENT_ATTEMPTS attempts; after that it waits for manual triage.

Every transition is a conditional update, so concurrent batch runs never
process the same job twice for one attempt.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from shared import dynamo
from shared.config import config
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import logger
from shared.models import JobStatus, QueuePriority, SubjectType
from shared.utils import utc_now, utc_now_iso


def _jobs_in_status(status: str, filter_expression=None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Jobs in one status, oldest first (byStatus GSI sorts on createdAt)."""
    return dynamo.query(
        config.ASSESSMENT_JOBS_TABLE,
        index_name='byStatus',
        key_condition=Key('status').eq(status),
        filter_expression=filter_expression,
        limit=limit,
        scan_forward=True
    )


def queue_for_assessment(work_id: str, section_id: str, priority: str = QueuePriority.NORMAL) -> Dict[str, Any]:
    """
    Queue a section for automated assessment.

    Returns:
        The new job, or the section's existing pending/processing job

    Raises:
        ValidationError: missing ids or unknown priority
        ConflictError: the section was assessed within the cool-down period
    """
    if not work_id or not section_id:
        raise ValidationError('workId and sectionId are required')
    if priority not in QueuePriority.ALL:
        raise ValidationError(f"priority must be one of {', '.join(QueuePriority.ALL)}")

    existing = dynamo.query(
        config.ASSESSMENT_JOBS_TABLE,
        index_name='bySection',
        key_condition=Key('sectionId').eq(section_id)
    )
    cooldown_start = (utc_now() - timedelta(days=config.REASSESSMENT_COOLDOWN_DAYS)).isoformat()
    for job in existing:
        if job.get('status') in (JobStatus.PENDING, JobStatus.PROCESSING):
            return job
        if job.get('status') == JobStatus.DONE and job.get('completedAt', '') > cooldown_start:
            raise ConflictError(
                f"Section {section_id} was assessed recently; try again after "
                f"{config.REASSESSMENT_COOLDOWN_DAYS} days"
            )

    job = {
        'jobId': str(uuid.uuid4()),
        'workId': work_id,
        'sectionId': section_id,
        'priority': priority,
        'status': JobStatus.PENDING,
        'attempts': 0,
        'createdAt': utc_now_iso(),
    }
    dynamo.put_item(config.ASSESSMENT_JOBS_TABLE, job, condition_expression=Attr('jobId').not_exists())
    logger.info(f"Queued section {section_id} for assessment as job {job['jobId']}")
    return job


def list_candidates(limit: int) -> List[Dict[str, Any]]:
    """Pending jobs FIFO, followed by failed jobs that still have attempts left."""
    candidates = _jobs_in_status(JobStatus.PENDING, limit=limit)
    if len(candidates) < limit:
        candidates += _jobs_in_status(
            JobStatus.FAILED,
            filter_expression=Attr('attempts').lt(config.MAX_ASSESSMENT_ATTEMPTS),
            limit=limit - len(candidates)
        )
    return candidates


def claim_job(job_id: str, token: str, now: datetime) -> Optional[Dict[str, Any]]:
    """
    Atomically move a job to processing and count the attempt.

    Returns:
        The claimed job, or None if another run claimed it first or it has no
        attempts left
    """
    return dynamo.update_item(
        config.ASSESSMENT_JOBS_TABLE,
        {'jobId': job_id},
        'SET #status = :processing, attempts = if_not_exists(attempts, :zero) + :one, '
        'claimToken = :token, lastAttempt = :now',
        {
            ':processing': JobStatus.PROCESSING,
            ':pending': JobStatus.PENDING,
            ':failed': JobStatus.FAILED,
            ':zero': 0,
            ':one': 1,
            ':max': config.MAX_ASSESSMENT_ATTEMPTS,
            ':token': token,
            ':now': now.isoformat(),
        },
        expression_names={'#status': 'status'},
        condition_expression='(#status = :pending OR #status = :failed) '
                             'AND (attribute_not_exists(attempts) OR attempts < :max)'
    )


def _finish(job: Dict[str, Any], update_expression: str, values: Dict[str, Any]) -> bool:
    values.update({':processing': JobStatus.PROCESSING, ':token': job['claimToken']})
    updated = dynamo.update_item(
        config.ASSESSMENT_JOBS_TABLE,
        {'jobId': job['jobId']},
        update_expression,
        values,
        expression_names={'#status': 'status'},
        condition_expression='#status = :processing AND claimToken = :token'
    )
    return updated is not None


def mark_done(job: Dict[str, Any], result) -> bool:
    """Record a successful assessment. False if the claim was lost meanwhile."""
    done = _finish(
        job,
        'SET #status = :done, resultId = :result, completedAt = :now REMOVE lastError',
        {':done': JobStatus.DONE, ':result': result.result_id, ':now': utc_now_iso()}
    )
    if done:
        logger.info(f"Assessment job {job['jobId']} done (result {result.result_id})")
    return done


def mark_failed(job: Dict[str, Any], error: Exception) -> bool:
    """Record a failed attempt; at the attempt limit the job needs manual triage."""
    attempts = int(job.get('attempts', 0))
    permanent = attempts >= config.MAX_ASSESSMENT_ATTEMPTS
    failed = _finish(
        job,
        'SET #status = :failed, lastError = :error, failedAt = :now, needsTriage = :triage',
        {
            ':failed': JobStatus.FAILED,
            ':error': f"{error.__class__.__name__}: {error}"[:1000],
            ':now': utc_now_iso(),
            ':triage': permanent,
        }
    )
    if failed:
        suffix = ' permanently' if permanent else ''
        logger.warning(f"Assessment job {job['jobId']} failed{suffix} (attempt {attempts}): {error}")
    return failed


def release_stale_jobs(now: datetime) -> int:
    """Fail processing jobs whose claim outlived the lease (crashed or timed-out runs)."""
    cutoff = (now - timedelta(seconds=config.JOB_LEASE_SECONDS)).isoformat()
    released = 0
    for job in _jobs_in_status(JobStatus.PROCESSING, filter_expression=Attr('lastAttempt').lt(cutoff)):
        if not job.get('claimToken'):
            continue
        if mark_failed(job, TimeoutError('lease expired')):
            released += 1
    if released:
        logger.warning(f"Released {released} abandoned assessment jobs")
    return released


def count_pending() -> int:
    return len(_jobs_in_status(JobStatus.PENDING))


def count_by_status() -> Dict[str, int]:
    return {status: len(_jobs_in_status(status)) for status in JobStatus.ALL}


def list_needing_triage() -> List[Dict[str, Any]]:
    """Failed jobs that used every attempt."""
    return _jobs_in_status(
        JobStatus.FAILED,
        filter_expression=Attr('attempts').gte(config.MAX_ASSESSMENT_ATTEMPTS)
    )


def load_job_content(job: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fetch what the validator needs for a job.

    Returns:
        {'content': {...}, 'target': {...}, 'currentRating': str|None, 'isFirstChapter': bool}

    Raises:
        NotFoundError: the section no longer exists or belongs to another work
    """
    section = dynamo.get_item(config.SECTIONS_TABLE, {'sectionId': job['sectionId']})
    if not section:
        raise NotFoundError(f"Section {job['sectionId']} not found")
    if section.get('workId') != job['workId']:
        raise NotFoundError(f"Section {job['sectionId']} not found in work {job['workId']}")
    work = dynamo.get_item(config.WORKS_TABLE, {'workId': job['workId']}) or {}

    is_first_chapter = int(section.get('chapterNumber') or 0) == 1
    content = {'text': section.get('content')}
    if is_first_chapter and work.get('coverImage'):
        content['imageRef'] = work['coverImage']

    return {
        'content': content,
        'target': {'type': SubjectType.SECTION, 'id': job['sectionId'], 'workId': job['workId']},
        'currentRating': work.get('maturityRating'),
        'isFirstChapter': is_first_chapter,
    }
