"""
Decide Tier 3 Deal Handler.
PATCH /tier3-deals/{dealId}
"""
from shared.auth import get_actor
from shared.deals import decide_deal
from shared.logging import log_event
from shared.utils import error_response, format_response, get_path_param, parse_body


def handler(event, context):
    """
    Request body:
    {
        "action": "approve" | "reject",
        "rejectionReason": "optional, used on reject"
    }
    """
    log_event(event)
    try:
        actor = get_actor(event)
        body = parse_body(event)

        deal = decide_deal(
            get_path_param(event, 'dealId'),
            actor['userId'],
            body.get('action'),
            reason=body.get('rejectionReason')
        )

        return format_response(200, {'success': True, 'deal': deal})

    except Exception as e:
        return error_response(e, 'update deal')
