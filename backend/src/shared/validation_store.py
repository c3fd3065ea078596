"""
Append-only storage for validation results (ValidationResults table).
"""
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from shared import dynamo, moderation_queue
from shared.config import config
from shared.logging import logger
from shared.models import QueuePriority


def record_result(result, options) -> Dict[str, Any]:
    """
    Persist a ValidationResult.

    A failed first chapter is also put in front of a moderator: high priority
    when the score is below 0.5, normal otherwise.
    """
    item = result.to_item()
    dynamo.put_item(
        config.VALIDATION_RESULTS_TABLE, item,
        condition_expression=Attr('resultId').not_exists()
    )
    logger.info(f"Recorded validation result {result.result_id} for {item['targetKey']}")

    if options.is_first_chapter and not result.passed and result.target_id:
        priority = QueuePriority.HIGH if result.score < 0.5 else QueuePriority.NORMAL
        moderation_queue.enqueue_for_moderation(
            result.target_type,
            result.target_id,
            priority=priority,
            reason=f"Validation failed: {', '.join(result.flags)}"
        )
    return item


def list_results(target_type: str, target_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Results for one work or section, newest first."""
    return dynamo.query(
        config.VALIDATION_RESULTS_TABLE,
        index_name='byTarget',
        key_condition=Key('targetKey').eq(f"{target_type}#{target_id}"),
        limit=limit,
        scan_forward=False
    )


def latest_result(target_type: str, target_id: str) -> Optional[Dict[str, Any]]:
    results = list_results(target_type, target_id, limit=1)
    return results[0] if results else None
