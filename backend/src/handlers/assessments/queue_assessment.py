"""
Queue Assessment Handler.
POST /quality-assessment/queue
"""
from shared.assessment_jobs import queue_for_assessment
from shared.auth import get_actor
from shared.logging import log_event
from shared.models import QueuePriority
from shared.utils import error_response, format_response, parse_body


def handler(event, context):
    """
    Request body:
    {
        "workId": "...",
        "sectionId": "...",
        "priority": "normal"
    }
    """
    log_event(event)
    try:
        get_actor(event)
        body = parse_body(event)

        job = queue_for_assessment(
            body.get('workId'),
            body.get('sectionId'),
            priority=body.get('priority') or QueuePriority.NORMAL
        )

        return format_response(200, {'success': True, 'queueItem': job})

    except Exception as e:
        return error_response(e, 'queue assessment')
