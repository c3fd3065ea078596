"""
Set Default Variant Handler.
POST /fan-content/{variantType}/{variantId}/default

The work's creator (or an admin) picks which translation or audiobook readers
get by default. The response includes the best-rated active variant as a hint.
"""
from shared.auth import get_actor
from shared.fan_votes import set_default_variant
from shared.logging import log_event
from shared.utils import error_response, format_response, get_path_param


def handler(event, context):
    log_event(event)
    try:
        actor = get_actor(event)
        outcome = set_default_variant(
            get_path_param(event, 'variantType'),
            get_path_param(event, 'variantId'),
            actor
        )
        return format_response(200, {'success': True, **outcome})

    except Exception as e:
        return error_response(e, 'set default variant')
