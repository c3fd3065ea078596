"""
Submit Fan Content Handler.
POST /translations/submit
POST /audiobooks/submit
"""
from shared.auth import get_actor
from shared.errors import ValidationError
from shared.fan_content import submit_variant
from shared.logging import log_event
from shared.models import VariantType
from shared.utils import error_response, format_response, parse_body

RESOURCE_TYPES = {
    '/translations/submit': VariantType.TRANSLATION,
    '/audiobooks/submit': VariantType.AUDIOBOOK,
}


def handler(event, context):
    log_event(event)
    try:
        actor = get_actor(event)
        body = parse_body(event)

        target_type = RESOURCE_TYPES.get(event.get('resource') or event.get('path'), body.get('type'))
        if target_type not in VariantType.ALL:
            raise ValidationError('Unknown fan content type')

        payload = {k: v for k, v in body.items() if k not in ('type', 'workId', 'chapterId', 'languageCode')}
        submitted = submit_variant(
            target_type,
            actor['userId'],
            body.get('workId'),
            body.get('chapterId'),
            body.get('languageCode'),
            payload
        )

        variant = submitted['variant']
        deal = submitted['deal']
        return format_response(201, {
            'success': True,
            target_type: {
                'id': variant['variantId'],
                'status': variant['status'],
            },
            'dealId': deal['dealId'] if deal else None,
            'message': 'Submitted and awaiting creator approval' if deal
                       else 'Submitted! It will appear in the menu immediately.'
        })

    except Exception as e:
        return error_response(e, 'submit fan content')
