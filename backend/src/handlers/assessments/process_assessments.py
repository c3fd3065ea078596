"""
Process Assessments Handler.
Triggered by EventBridge every 5 minutes; also callable as
POST /cron/process-assessments with `Authorization: Bearer <CRON_SECRET>`
or by an admin.
"""
import time

from shared.assessment_processor import process_batch
from shared.auth import get_actor, has_cron_secret, require_admin
from shared.config import config
from shared.context import get_validator
from shared.errors import ValidationError
from shared.logging import log_event, logger
from shared.utils import error_response, format_response, parse_body, utc_now_iso

# Time kept back from the Lambda timeout for the final bookkeeping
SAFETY_MARGIN_SECONDS = 20


def is_scheduled_event(event: dict) -> bool:
    return event.get('source') == 'aws.events' or event.get('detail-type') == 'Scheduled Event'


def batch_deadline(context) -> float:
    """Monotonic deadline for claiming jobs: the batch budget or the Lambda's remaining time."""
    budget = config.BATCH_TIME_BUDGET_SECONDS
    if context is not None and hasattr(context, 'get_remaining_time_in_millis'):
        remaining = context.get_remaining_time_in_millis() / 1000.0 - SAFETY_MARGIN_SECONDS
        budget = min(budget, remaining)
    return time.monotonic() + max(budget, 0)


def _max_count(requested) -> int:
    if requested is None:
        return config.ASSESSMENT_BATCH_SIZE
    if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
        raise ValidationError('maxCount must be a positive integer')
    return min(requested, config.ASSESSMENT_BATCH_SIZE)


def handler(event, context):
    log_event(event)
    scheduled = is_scheduled_event(event)
    try:
        if scheduled:
            params = event.get('detail') or {}
        else:
            if not has_cron_secret(event):
                require_admin(get_actor(event))
            params = parse_body(event)

        max_count = _max_count(params.get('maxCount', params.get('count')))
        result = process_batch(max_count, get_validator(), deadline=batch_deadline(context))

        if scheduled:
            return result

        return format_response(200, {'success': True, 'timestamp': utc_now_iso(), **result})

    except Exception as e:
        if scheduled:
            # Let EventBridge record the failed invocation
            logger.exception(f"Scheduled assessment batch failed: {e}")
            raise
        return error_response(e, 'process assessment queue')
