"""
Dry-Run Validation Handler.
POST /test/moderation

Runs the validation engine in dry-run mode so moderators can try rules
against sample content. Nothing is written.
"""
from dataclasses import replace

from shared.auth import get_actor, require_moderator
from shared.context import get_validator
from shared.errors import ValidationError
from shared.logging import log_event
from shared.utils import error_response, format_response, parse_body
from shared.validation import ValidationOptions


def handler(event, context):
    """
    Request body:
    {
        "content": "text" | {"text": ..., "imageRef": ...},
        "options": {"checkSafety": true, "isFirstChapter": false, ...},
        "workId": "optional, excluded from similarity checks",
        "currentRating": "PG-13"
    }
    """
    log_event(event)
    try:
        require_moderator(get_actor(event))
        body = parse_body(event)

        content = body.get('content')
        if isinstance(content, str):
            content = {'text': content}
        if not isinstance(content, dict):
            raise ValidationError('content is required')

        options = replace(ValidationOptions.from_request(body.get('options')), skip_persistence=True)

        target = {'workId': body['workId']} if body.get('workId') else None
        result = get_validator().validate(
            content, options, target=target, current_rating=body.get('currentRating')
        )

        return format_response(200, {
            'success': True,
            'result': result.to_public(),
            'details': result.details
        })

    except Exception as e:
        return error_response(e, 'run test validation')
