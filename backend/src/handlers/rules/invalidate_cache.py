"""
Invalidate Rule Cache Handler.
POST /admin/validation-rules/invalidate
"""
from shared.auth import get_actor, require_admin
from shared.context import get_rule_cache
from shared.logging import log_event
from shared.utils import error_response, format_response


def handler(event, context):
    log_event(event)
    try:
        require_admin(get_actor(event))
        generation = get_rule_cache().invalidate()
        return format_response(200, {'success': True, 'generation': generation})

    except Exception as e:
        return error_response(e, 'invalidate rule cache')
