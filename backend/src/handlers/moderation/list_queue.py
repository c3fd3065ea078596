"""
List Moderation Queue Handler.
GET /moderation/queue?status=queued&priority=high&limit=50

Entries come back in review order: urgent first, oldest first within a priority.
"""
from shared.auth import get_actor, require_moderator
from shared.errors import ValidationError
from shared.logging import log_event
from shared.models import QueueStatus
from shared.moderation_queue import list_queue
from shared.utils import error_response, format_response, get_query_param

MAX_LIMIT = 100


def handler(event, context):
    log_event(event)
    try:
        require_moderator(get_actor(event))

        status = get_query_param(event, 'status', QueueStatus.QUEUED)
        priority = get_query_param(event, 'priority')
        try:
            limit = int(get_query_param(event, 'limit', '50'))
        except ValueError:
            raise ValidationError('limit must be an integer') from None
        limit = max(1, min(limit, MAX_LIMIT))

        entries = list_queue(status=status, priority=priority, limit=limit)

        return format_response(200, {'entries': entries, 'count': len(entries)})

    except Exception as e:
        return error_response(e, 'list moderation queue')
