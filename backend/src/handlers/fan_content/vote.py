"""
Fan Content Vote Handler.
POST   /fan-content/vote   (create or overwrite the caller's vote)
DELETE /fan-content/vote   (withdraw it)
"""
from shared import fan_votes
from shared.auth import get_actor
from shared.errors import ValidationError
from shared.logging import log_event
from shared.models import VariantType
from shared.utils import error_response, format_response, parse_body


def resolve_target(body: dict):
    """Exactly one of translationId / audiobookId must be given."""
    translation_id = body.get('translationId')
    audiobook_id = body.get('audiobookId')
    if bool(translation_id) == bool(audiobook_id):
        raise ValidationError('Provide exactly one of translationId or audiobookId')
    if translation_id:
        return VariantType.TRANSLATION, translation_id
    return VariantType.AUDIOBOOK, audiobook_id


def handler(event, context):
    """
    Request body:
    {
        "translationId" | "audiobookId": "...",
        "readabilityRating": 1-5,
        "comprehensionRating": 1-5,
        "polishRating": 1-5
    }
    """
    log_event(event)
    try:
        actor = get_actor(event)
        body = parse_body(event)
        target_type, target_id = resolve_target(body)

        if (event.get('httpMethod') or 'POST').upper() == 'DELETE':
            aggregate = fan_votes.remove_vote(actor['userId'], target_type, target_id)
        else:
            aggregate = fan_votes.vote(
                actor['userId'],
                target_type,
                target_id,
                body.get('readabilityRating'),
                body.get('comprehensionRating'),
                body.get('polishRating')
            )

        return format_response(200, {'success': True, 'ratings': aggregate})

    except Exception as e:
        return error_response(e, 'record vote')
