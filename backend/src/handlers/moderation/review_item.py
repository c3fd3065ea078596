"""
Review Moderation Entry Handler.
PATCH /moderation/queue/{entryId}

approve -> entry approved, work/section published
reject  -> entry rejected, work/section back to draft
flag    -> notes recorded, entry stays queued
"""
from shared.auth import get_actor
from shared.logging import log_event
from shared.moderation_queue import review_item
from shared.utils import error_response, format_response, get_path_param, parse_body


def handler(event, context):
    """
    Request body:
    {
        "action": "approve" | "reject" | "flag",
        "notes": "optional reviewer notes"
    }
    """
    log_event(event)
    try:
        actor = get_actor(event)
        body = parse_body(event)

        entry = review_item(
            get_path_param(event, 'entryId'),
            body.get('action'),
            actor,
            notes=body.get('notes')
        )

        return format_response(200, {'success': True, 'entry': entry})

    except Exception as e:
        return error_response(e, 'review moderation entry')
