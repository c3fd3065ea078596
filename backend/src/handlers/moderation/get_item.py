"""
Get Moderation Entry Handler.
GET /moderation/queue/{entryId}
"""
from shared.auth import get_actor, require_moderator
from shared.logging import log_event
from shared.moderation_queue import get_entry
from shared.utils import error_response, format_response, get_path_param


def handler(event, context):
    log_event(event)
    try:
        require_moderator(get_actor(event))
        entry = get_entry(get_path_param(event, 'entryId'))
        return format_response(200, {'entry': entry})

    except Exception as e:
        return error_response(e, 'get moderation entry')
