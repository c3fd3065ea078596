"""
Fan-content rating aggregator.

Readers rate competing translations and audiobooks on readability,
comprehension and polish (1-5). One vote per (user, variant): voting again
overwrites. After every vote the variant's averages are recomputed from all
current votes, never adjusted incrementally.

Concurrent votes: each recompute is tagged with the variant's vote version
taken after its own vote landed, and only the newest recompute is written.
"""
from typing import Any, Dict, Iterable, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from shared import dynamo
from shared.auth import is_admin
from shared.config import config
from shared.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.logging import logger
from shared.models import VariantStatus, VariantType
from shared.utils import to_decimal, utc_now_iso

RATING_FIELDS = ('readabilityRating', 'comprehensionRating', 'polishRating')


def variant_table(target_type: str) -> str:
    if target_type not in VariantType.ALL:
        raise ValidationError(f"Exactly one target is required: {' or '.join(VariantType.ALL)}")
    if target_type == VariantType.TRANSLATION:
        return config.FAN_TRANSLATIONS_TABLE
    return config.FAN_AUDIOBOOKS_TABLE


def target_key(target_type: str, target_id: str) -> str:
    return f"{target_type}#{target_id}"


def get_variant(target_type: str, variant_id: str) -> Dict[str, Any]:
    variant = dynamo.get_item(variant_table(target_type), {'variantId': variant_id})
    if not variant:
        raise NotFoundError(f"{target_type.capitalize()} {variant_id} not found")
    return variant


def _validate_rating(name: str, value: Any) -> int:
    # bool is an int subclass; True is not a rating
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError(f"{name} must be an integer between 1 and 5")
    return value


def compute_aggregate(votes: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Averages over all given votes.

    Sums are taken over integers, so the averages do not depend on vote order.
    `qualityOverall` is the mean of the three averages.
    """
    votes = list(votes)
    count = len(votes)
    if count == 0:
        return {
            'readabilityAvg': 0.0,
            'comprehensionAvg': 0.0,
            'polishAvg': 0.0,
            'qualityOverall': 0.0,
            'ratingCount': 0,
        }

    readability = sum(int(v['readabilityRating']) for v in votes) / count
    comprehension = sum(int(v['comprehensionRating']) for v in votes) / count
    polish = sum(int(v['polishRating']) for v in votes) / count
    return {
        'readabilityAvg': round(readability, 4),
        'comprehensionAvg': round(comprehension, 4),
        'polishAvg': round(polish, 4),
        'qualityOverall': round((readability + comprehension + polish) / 3, 4),
        'ratingCount': count,
    }


def _recompute(target_type: str, variant_id: str) -> Dict[str, Any]:
    table = variant_table(target_type)
    bumped = dynamo.update_item(
        table,
        {'variantId': variant_id},
        'SET voteVersion = if_not_exists(voteVersion, :zero) + :one',
        {':zero': 0, ':one': 1},
        condition_expression='attribute_exists(variantId)'
    )
    if bumped is None:
        raise NotFoundError(f"{target_type.capitalize()} {variant_id} not found")
    version = int(bumped['voteVersion'])

    votes = dynamo.query(
        config.FAN_VOTES_TABLE,
        key_condition=Key('targetKey').eq(target_key(target_type, variant_id)),
        consistent_read=True
    )
    aggregate = compute_aggregate(votes)

    written = dynamo.update_item(
        table,
        {'variantId': variant_id},
        'SET readabilityAvg = :r, comprehensionAvg = :c, polishAvg = :p, '
        'qualityOverall = :q, ratingCount = :n, ratingsUpdatedAt = :now',
        {
            ':r': to_decimal(aggregate['readabilityAvg']),
            ':c': to_decimal(aggregate['comprehensionAvg']),
            ':p': to_decimal(aggregate['polishAvg']),
            ':q': to_decimal(aggregate['qualityOverall']),
            ':n': aggregate['ratingCount'],
            ':now': utc_now_iso(),
            ':version': version,
        },
        condition_expression='voteVersion = :version'
    )
    if written is None:
        logger.info(f"Newer vote on {target_type} {variant_id} supersedes aggregate v{version}")
    return aggregate


def vote(
    user_id: str,
    target_type: str,
    target_id: str,
    readability: int,
    comprehension: int,
    polish: int
) -> Dict[str, Any]:
    """
    Record (or overwrite) a user's vote and return the recomputed aggregate.

    Raises:
        ValidationError: bad target type or rating
        NotFoundError: the variant does not exist
    """
    if not user_id:
        raise ValidationError('userId is required')
    if not target_id:
        raise ValidationError('targetId is required')
    ratings = {
        'readabilityRating': _validate_rating('readability', readability),
        'comprehensionRating': _validate_rating('comprehension', comprehension),
        'polishRating': _validate_rating('polish', polish),
    }
    get_variant(target_type, target_id)

    now = utc_now_iso()
    dynamo.update_item(
        config.FAN_VOTES_TABLE,
        {'targetKey': target_key(target_type, target_id), 'userId': user_id},
        'SET readabilityRating = :r, comprehensionRating = :c, polishRating = :p, '
        'updatedAt = :now, createdAt = if_not_exists(createdAt, :now)',
        {
            ':r': ratings['readabilityRating'],
            ':c': ratings['comprehensionRating'],
            ':p': ratings['polishRating'],
            ':now': now,
        }
    )
    logger.info(f"User {user_id} voted on {target_type} {target_id}")
    return _recompute(target_type, target_id)


def remove_vote(user_id: str, target_type: str, target_id: str) -> Dict[str, Any]:
    """Withdraw a vote and return the recomputed aggregate."""
    removed = dynamo.delete_item(
        config.FAN_VOTES_TABLE,
        {'targetKey': target_key(target_type, target_id), 'userId': user_id},
        condition_expression=Attr('userId').exists()
    )
    if not removed:
        raise NotFoundError(f"No vote by {user_id} on {target_type} {target_id}")
    logger.info(f"User {user_id} removed vote on {target_type} {target_id}")
    return _recompute(target_type, target_id)


def rank_variants(variants: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Best rated first; ties go to the earliest submission."""
    return sorted(
        variants,
        key=lambda v: (-float(v.get('qualityOverall') or 0), v.get('createdAt', ''))
    )


def recommend_default(variants: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The highest ranked active variant, or None."""
    for variant in rank_variants(variants):
        if variant.get('status') == VariantStatus.ACTIVE:
            return variant
    return None


def list_variants(target_type: str, chapter_id: str, language_code: str) -> List[Dict[str, Any]]:
    """Competing variants for one chapter and language, ranked."""
    variants = dynamo.query(
        variant_table(target_type),
        index_name='byChapter',
        key_condition=Key('chapterId').eq(chapter_id),
        filter_expression=Attr('languageCode').eq(language_code)
    )
    return rank_variants(variants)


def set_default_variant(target_type: str, variant_id: str, actor: Dict[str, Any]) -> Dict[str, Any]:
    """
    Make a variant the default for its chapter and language.

    Only the work's creator or an admin may choose. Any previous default for the
    same chapter and language is cleared in the same transaction.

    Raises:
        AuthorizationError, NotFoundError,
        ConflictError: the variant is not active or a concurrent change won
    """
    table = variant_table(target_type)
    variant = get_variant(target_type, variant_id)
    if variant.get('status') != VariantStatus.ACTIVE:
        raise ConflictError(f"Only active variants can be the default (status '{variant.get('status')}')")

    work = dynamo.get_item(config.WORKS_TABLE, {'workId': variant['workId']})
    if not work:
        raise NotFoundError(f"Work {variant['workId']} not found")
    if actor.get('userId') != work.get('authorId') and not is_admin(actor):
        raise AuthorizationError('Only the creator of this work can choose the default variant')

    siblings = list_variants(target_type, variant['chapterId'], variant['languageCode'])
    previous = [v['variantId'] for v in siblings if v.get('isDefault') and v['variantId'] != variant_id]

    updates = [{
        'TableName': table,
        'Key': {'variantId': variant_id},
        'UpdateExpression': 'SET isDefault = :true',
        'ExpressionAttributeValues': {':true': True, ':active': VariantStatus.ACTIVE},
        'ExpressionAttributeNames': {'#status': 'status'},
        'ConditionExpression': '#status = :active',
    }]
    for previous_id in previous:
        updates.append({
            'TableName': table,
            'Key': {'variantId': previous_id},
            'UpdateExpression': 'SET isDefault = :false',
            'ExpressionAttributeValues': {':false': False, ':true': True},
            'ConditionExpression': 'isDefault = :true',
        })

    if not dynamo.transact_update(updates):
        raise ConflictError('Default variant changed concurrently; reload and try again')

    recommended = recommend_default(siblings)
    logger.info(f"{target_type.capitalize()} {variant_id} set as default by {actor.get('userId')}")
    return {
        'variantId': variant_id,
        'isDefault': True,
        'replaced': previous,
        'recommendedVariantId': recommended['variantId'] if recommended else None,
    }
