"""
Tier 3 revenue-share deals.

Lifecycle: pending_creator -> active (acceptedAt) | rejected (rejectionReason).
Only the creator named on the deal can decide it. The decision also activates
or rejects the fan-content variant that was waiting on it.
"""
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from boto3.dynamodb.conditions import Attr

from shared import dynamo
from shared.config import config
from shared.errors import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from shared.logging import logger
from shared.models import DealAction, DealContentType, DealStatus, VariantStatus
from shared.utils import to_decimal, utc_now_iso

DEAL_TRANSITIONS = {
    (DealStatus.PENDING_CREATOR, DealAction.APPROVE): DealStatus.ACTIVE,
    (DealStatus.PENDING_CREATOR, DealAction.REJECT): DealStatus.REJECTED,
}

# Variant status that follows each deal outcome
VARIANT_STATUS = {
    DealStatus.ACTIVE: VariantStatus.ACTIVE,
    DealStatus.REJECTED: VariantStatus.REJECTED,
}


def _variant_table(content_type: str) -> str:
    if content_type == DealContentType.TRANSLATION:
        return config.FAN_TRANSLATIONS_TABLE
    return config.FAN_AUDIOBOOKS_TABLE


def create_deal(
    work_id: str,
    creator_id: str,
    contributor_id: str,
    content_type: str,
    variant_id: Optional[str],
    language_code: str,
    revenue_share_percent
) -> Dict[str, Any]:
    """Create a deal awaiting the creator's decision."""
    if content_type not in (DealContentType.TRANSLATION, DealContentType.AUDIOBOOK):
        raise ValidationError(f"Unknown deal content type '{content_type}'")
    try:
        share = to_decimal(revenue_share_percent)
    except InvalidOperation:
        raise ValidationError('revenueSharePercent must be a number') from None
    if not share.is_finite() or not Decimal(0) <= share <= Decimal(100):
        raise ValidationError('revenueSharePercent must be between 0 and 100')

    deal = {
        'dealId': str(uuid.uuid4()),
        'workId': work_id,
        'creatorId': creator_id,
        'contributorId': contributor_id,
        'contentType': content_type,
        'variantId': variant_id,
        'languageCode': language_code,
        'revenueSharePercent': share,
        'status': DealStatus.PENDING_CREATOR,
        'createdAt': utc_now_iso(),
    }
    dynamo.put_item(config.TIER3_DEALS_TABLE, deal, condition_expression=Attr('dealId').not_exists())
    logger.info(f"Created Tier 3 deal {deal['dealId']} for work {work_id} ({content_type})")
    return deal


def get_deal(deal_id: str) -> Dict[str, Any]:
    deal = dynamo.get_item(config.TIER3_DEALS_TABLE, {'dealId': deal_id})
    if not deal:
        raise NotFoundError(f"Deal {deal_id} not found")
    return deal


def next_deal_status(current: str, action: str) -> str:
    """
    Raises:
        ValidationError: action is not approve/reject
        InvalidTransitionError: the deal was already decided
    """
    if action not in DealAction.ALL:
        raise ValidationError('Action must be either "approve" or "reject"')
    try:
        return DEAL_TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError(current, action, what='deal') from None


def decide_deal(deal_id: str, actor_id: str, action: str, reason: Optional[str] = None) -> Dict[str, Any]:
    """
    Approve or reject a pending deal as its creator.

    Returns:
        {'dealId', 'status', 'acceptedAt', 'rejectionReason'}

    Raises:
        AuthorizationError: actor is not the deal's creator
        NotFoundError, ValidationError, InvalidTransitionError
    """
    deal = get_deal(deal_id)
    if not actor_id or actor_id != deal.get('creatorId'):
        raise AuthorizationError('Only the creator can approve or reject deals')

    new_status = next_deal_status(deal.get('status'), action)
    now = utc_now_iso()

    values = {':new': new_status, ':pending': DealStatus.PENDING_CREATOR, ':now': now}
    if new_status == DealStatus.ACTIVE:
        expression = 'SET #status = :new, acceptedAt = :now, decidedAt = :now'
    else:
        expression = 'SET #status = :new, rejectionReason = :reason, decidedAt = :now'
        values[':reason'] = reason or ''

    updates = [{
        'TableName': config.TIER3_DEALS_TABLE,
        'Key': {'dealId': deal_id},
        'UpdateExpression': expression,
        'ExpressionAttributeValues': values,
        'ExpressionAttributeNames': {'#status': 'status'},
        'ConditionExpression': '#status = :pending',
    }]
    if deal.get('variantId'):
        updates.append({
            'TableName': _variant_table(deal['contentType']),
            'Key': {'variantId': deal['variantId']},
            'UpdateExpression': 'SET #status = :variant_status',
            'ExpressionAttributeValues': {
                ':variant_status': VARIANT_STATUS[new_status],
                ':waiting': VariantStatus.PENDING_APPROVAL,
            },
            'ExpressionAttributeNames': {'#status': 'status'},
            'ConditionExpression': '#status = :waiting',
        })

    if not dynamo.transact_update(updates):
        current = get_deal(deal_id).get('status')
        raise InvalidTransitionError(current, action, what='deal')

    logger.info(f"Deal {deal_id} {new_status} by creator {actor_id}")
    return {
        'dealId': deal_id,
        'status': new_status,
        'acceptedAt': now if new_status == DealStatus.ACTIVE else None,
        'rejectionReason': (reason or '') if new_status == DealStatus.REJECTED else None,
    }
