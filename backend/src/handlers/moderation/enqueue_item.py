"""
Enqueue For Moderation Handler.
POST /moderation/queue
"""
from shared.auth import get_actor, is_moderator
from shared.errors import AuthorizationError
from shared.logging import log_event
from shared.models import QueuePriority
from shared.moderation_queue import enqueue_for_moderation
from shared.utils import error_response, format_response, parse_body

ELEVATED_PRIORITIES = (QueuePriority.URGENT, QueuePriority.HIGH)


def handler(event, context):
    """
    Request body:
    {
        "subjectType": "work" | "section",
        "subjectId": "...",
        "priority": "urgent" | "high" | "normal" | "low",
        "reason": "optional"
    }
    """
    log_event(event)
    try:
        actor = get_actor(event)
        body = parse_body(event)

        priority = body.get('priority', QueuePriority.NORMAL)
        if priority in ELEVATED_PRIORITIES and not is_moderator(actor):
            raise AuthorizationError('Only moderators can queue items at high or urgent priority')

        entry_id = enqueue_for_moderation(
            body.get('subjectType'),
            body.get('subjectId'),
            priority=priority,
            reason=body.get('reason', '')
        )

        return format_response(201, {'success': True, 'entryId': entry_id})

    except Exception as e:
        return error_response(e, 'queue item for moderation')
