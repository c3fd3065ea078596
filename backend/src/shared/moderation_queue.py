"""
Moderation queue: a durable, priority-ordered backlog of works and sections
awaiting review.

Lifecycle: queued -> approved | rejected. Both are terminal and entries are
never deleted. `flag` annotates a queued entry without resolving it.
A resolved entry cascades onto its subject's publish status in the same
DynamoDB transaction as the status change.
"""
import uuid
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

from shared import dynamo, validation_store
from shared.auth import require_moderator
from shared.config import config
from shared.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from shared.logging import logger
from shared.models import (
    PRIORITY_RANK, PublishStatus, QueuePriority, QueueStatus, ReviewAction, SubjectType
)
from shared.utils import content_hash, extract_text, utc_now_iso

# The single transition table for queue entries
TRANSITIONS = {
    (QueueStatus.QUEUED, ReviewAction.APPROVE): QueueStatus.APPROVED,
    (QueueStatus.QUEUED, ReviewAction.REJECT): QueueStatus.REJECTED,
    (QueueStatus.QUEUED, ReviewAction.FLAG): QueueStatus.QUEUED,
}

# Publish status a resolved entry pushes onto its work or section
CASCADE_STATUS = {
    QueueStatus.APPROVED: PublishStatus.PUBLISHED,
    QueueStatus.REJECTED: PublishStatus.DRAFT,
}

SUBJECT_TABLES = {
    SubjectType.WORK: ('WORKS_TABLE', 'workId'),
    SubjectType.SECTION: ('SECTIONS_TABLE', 'sectionId'),
}


def _subject_table(subject_type: str):
    table_attr, key_name = SUBJECT_TABLES[subject_type]
    return getattr(config, table_attr), key_name


def next_status(current: str, action: str) -> str:
    """
    Resolve a review action against the entry's current status.

    Raises:
        ValidationError: unknown action
        InvalidTransitionError: the entry is already resolved
    """
    if action not in ReviewAction.ALL:
        raise ValidationError(f"action must be one of {', '.join(ReviewAction.ALL)}")
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError(current, action, what='queue entry') from None


def order_entries(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Priority descending (urgent first), then oldest first within a priority."""
    return sorted(
        entries,
        key=lambda e: (-PRIORITY_RANK.get(e.get('priority'), PRIORITY_RANK[QueuePriority.NORMAL]),
                       e.get('createdAt', ''))
    )


def enqueue_for_moderation(
    subject_type: str,
    subject_id: str,
    priority: str = QueuePriority.NORMAL,
    reason: str = ''
) -> str:
    """
    Add a work or section to the queue.

    A subject that already has a queued entry keeps that entry; its id is returned.

    Returns:
        entryId
    """
    if subject_type not in SubjectType.ALL:
        raise ValidationError(f"subjectType must be one of {', '.join(SubjectType.ALL)}")
    if not subject_id:
        raise ValidationError('subjectId is required')
    if priority not in QueuePriority.ALL:
        raise ValidationError(f"priority must be one of {', '.join(QueuePriority.ALL)}")

    subject_key = f"{subject_type}#{subject_id}"
    existing = dynamo.query(
        config.MODERATION_QUEUE_TABLE,
        index_name='bySubject',
        key_condition=Key('subjectKey').eq(subject_key)
    )
    for entry in existing:
        if entry.get('status') == QueueStatus.QUEUED:
            logger.info(f"{subject_key} already queued as {entry['entryId']}")
            return entry['entryId']

    entry_id = str(uuid.uuid4())
    dynamo.put_item(config.MODERATION_QUEUE_TABLE, {
        'entryId': entry_id,
        'subjectKey': subject_key,
        'subjectType': subject_type,
        'subjectId': subject_id,
        'status': QueueStatus.QUEUED,
        'priority': priority,
        'reason': reason or '',
        'createdAt': utc_now_iso(),
    })
    logger.info(f"Queued {subject_key} for moderation as {entry_id} ({priority})")
    return entry_id


def list_queue(
    status: str = QueueStatus.QUEUED,
    priority: Optional[str] = None,
    limit: int = 50
) -> List[Dict[str, Any]]:
    """Entries in one status, in review order."""
    entries = dynamo.query(
        config.MODERATION_QUEUE_TABLE,
        index_name='byStatus',
        key_condition=Key('status').eq(status)
    )
    if priority:
        entries = [e for e in entries if e.get('priority') == priority]
    return order_entries(entries)[:limit]


def get_entry(entry_id: str) -> Dict[str, Any]:
    """A queue entry with the validation results recorded for its subject."""
    entry = dynamo.get_item(config.MODERATION_QUEUE_TABLE, {'entryId': entry_id})
    if not entry:
        raise NotFoundError(f"Moderation entry {entry_id} not found")
    entry['validationResults'] = validation_store.list_results(
        entry['subjectType'], entry['subjectId'], limit=10
    )
    return entry


def _require_current_validation(section_id: str) -> None:
    section = dynamo.get_item(config.SECTIONS_TABLE, {'sectionId': section_id})
    if not section:
        raise NotFoundError(f"Section {section_id} not found")
    latest = validation_store.latest_result(SubjectType.SECTION, section_id)
    current_hash = content_hash(extract_text(section.get('content')))
    if not latest or latest.get('contentHash') != current_hash:
        raise ConflictError(
            'Section content has changed since it was last validated; validate it again before approving'
        )


def review_item(
    entry_id: str,
    action: str,
    actor: Dict[str, Any],
    notes: Optional[str] = None
) -> Dict[str, Any]:
    """
    Approve, reject or flag a queued entry.

    Args:
        entry_id: queue entry
        action: approve | reject | flag
        actor: {'userId', 'groups'}; must be a moderator or admin
        notes: optional reviewer notes

    Returns:
        The updated entry

    Raises:
        AuthorizationError, ValidationError, NotFoundError,
        InvalidTransitionError (already resolved, including by a concurrent reviewer)
    """
    require_moderator(actor)

    entry = dynamo.get_item(config.MODERATION_QUEUE_TABLE, {'entryId': entry_id})
    if not entry:
        raise NotFoundError(f"Moderation entry {entry_id} not found")

    new_status = next_status(entry.get('status'), action)
    subject_type = entry['subjectType']
    subject_id = entry['subjectId']
    now = utc_now_iso()

    if action == ReviewAction.FLAG:
        updated = dynamo.update_item(
            config.MODERATION_QUEUE_TABLE,
            {'entryId': entry_id},
            'SET notes = :notes, flaggedAt = :now, reviewedBy = :by',
            {':notes': notes or entry.get('notes', ''), ':now': now, ':by': actor['userId'],
             ':queued': QueueStatus.QUEUED},
            expression_names={'#status': 'status'},
            condition_expression='#status = :queued'
        )
        if updated is None:
            raise InvalidTransitionError(_current_status(entry_id), action, what='queue entry')
        logger.info(f"Moderation entry {entry_id} flagged by {actor['userId']}")
        return updated

    if action == ReviewAction.APPROVE and subject_type == SubjectType.SECTION \
            and config.REQUIRE_VALIDATION_BEFORE_APPROVAL:
        _require_current_validation(subject_id)

    table, key_name = _subject_table(subject_type)
    if not dynamo.get_item(table, {key_name: subject_id}):
        raise NotFoundError(f"{subject_type.capitalize()} {subject_id} not found")

    subject_values = {':status': CASCADE_STATUS[new_status]}
    subject_expression = 'SET #status = :status'
    if subject_type == SubjectType.SECTION and new_status == QueueStatus.APPROVED:
        subject_expression += ', publishedAt = :now'
        subject_values[':now'] = now

    committed = dynamo.transact_update([
        {
            'TableName': config.MODERATION_QUEUE_TABLE,
            'Key': {'entryId': entry_id},
            'UpdateExpression': 'SET #status = :new, completedAt = :now, reviewedBy = :by, notes = :notes',
            'ExpressionAttributeValues': {
                ':new': new_status,
                ':now': now,
                ':by': actor['userId'],
                ':notes': notes or entry.get('notes', ''),
                ':queued': QueueStatus.QUEUED,
            },
            'ExpressionAttributeNames': {'#status': 'status'},
            'ConditionExpression': '#status = :queued',
        },
        {
            'TableName': table,
            'Key': {key_name: subject_id},
            'UpdateExpression': subject_expression,
            'ExpressionAttributeValues': subject_values,
            'ExpressionAttributeNames': {'#status': 'status'},
        },
    ])
    if not committed:
        raise InvalidTransitionError(_current_status(entry_id), action, what='queue entry')

    logger.info(
        f"Moderation entry {entry_id} {new_status} by {actor['userId']}; "
        f"{subject_type} {subject_id} -> {CASCADE_STATUS[new_status]}"
    )
    entry.update({
        'status': new_status,
        'completedAt': now,
        'reviewedBy': actor['userId'],
        'notes': notes or entry.get('notes', ''),
    })
    return entry


def _current_status(entry_id: str) -> str:
    entry = dynamo.get_item(config.MODERATION_QUEUE_TABLE, {'entryId': entry_id}) or {}
    return entry.get('status', 'unknown')
