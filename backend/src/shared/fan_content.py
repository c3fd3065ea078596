"""
Tier 3 fan-content submission (translations and audiobooks).
"""
import uuid
from typing import Any, Dict

from boto3.dynamodb.conditions import Attr

from shared import deals, dynamo
from shared.config import config
from shared.errors import AuthorizationError, NotFoundError, ValidationError
from shared.fan_votes import variant_table
from shared.logging import logger
from shared.models import DealContentType, VariantStatus, VariantType
from shared.utils import to_dynamo, utc_now_iso

# Settings for creators who never saved any
DEFAULT_SETTINGS = {
    'allowTier3Translations': True,
    'allowTier3Audiobooks': True,
    'requireCustomDealApproval': False,
    'defaultTranslationRevenueShare': 70,
    'defaultAudiobookRevenueShare': 70,
}

# Per variant type: (allow flag, default share, deal content type, required payload fields)
TYPE_SETTINGS = {
    VariantType.TRANSLATION: (
        'allowTier3Translations', 'defaultTranslationRevenueShare', DealContentType.TRANSLATION,
        ('translatedTitle', 'translatedContent'),
    ),
    VariantType.AUDIOBOOK: (
        'allowTier3Audiobooks', 'defaultAudiobookRevenueShare', DealContentType.AUDIOBOOK,
        ('audioUrl',),
    ),
}


def get_settings(creator_id: str) -> Dict[str, Any]:
    stored = dynamo.get_item(config.FAN_CONTENT_SETTINGS_TABLE, {'creatorId': creator_id}) or {}
    return {**DEFAULT_SETTINGS, **stored}


def submit_variant(
    target_type: str,
    contributor_id: str,
    work_id: str,
    chapter_id: str,
    language_code: str,
    payload: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Submit a Tier 3 translation or audiobook.

    Without custom deal approval the variant is active at once and no deal is
    created. With it, the variant waits in pending_approval behind a
    pending_creator deal.

    Returns:
        {'variant': {...}, 'deal': {...} or None}

    Raises:
        ValidationError: missing fields
        NotFoundError: unknown work
        AuthorizationError: the creator does not accept this kind of content
    """
    table = variant_table(target_type)
    allow_key, share_key, deal_type, required = TYPE_SETTINGS[target_type]
    payload = payload or {}

    missing = [name for name, value in (
        ('workId', work_id), ('chapterId', chapter_id), ('languageCode', language_code)
    ) if not value] + [name for name in required if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    work = dynamo.get_item(config.WORKS_TABLE, {'workId': work_id})
    if not work:
        raise NotFoundError(f"Work {work_id} not found")

    creator_id = work.get('authorId')
    settings = get_settings(creator_id)
    if not settings.get(allow_key):
        raise AuthorizationError(f"Creator does not allow Tier 3 {target_type}s")

    needs_deal = bool(settings.get('requireCustomDealApproval'))
    variant = {
        **{name: payload[name] for name in payload if name not in ('status', 'isDefault', 'variantId')},
        'variantId': str(uuid.uuid4()),
        'workId': work_id,
        'chapterId': chapter_id,
        'languageCode': language_code,
        'contributorId': contributor_id,
        'status': VariantStatus.PENDING_APPROVAL if needs_deal else VariantStatus.ACTIVE,
        'isDefault': False,
        'ratingCount': 0,
        'qualityOverall': 0,
        'createdAt': utc_now_iso(),
    }
    dynamo.put_item(table, to_dynamo(variant), condition_expression=Attr('variantId').not_exists())
    logger.info(f"{target_type.capitalize()} {variant['variantId']} submitted for work {work_id} ({variant['status']})")

    deal = None
    if needs_deal:
        deal = deals.create_deal(
            work_id=work_id,
            creator_id=creator_id,
            contributor_id=contributor_id,
            content_type=deal_type,
            variant_id=variant['variantId'],
            language_code=language_code,
            revenue_share_percent=settings.get(share_key),
        )

    return {'variant': variant, 'deal': deal}
