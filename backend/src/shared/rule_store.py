"""
Validation rule storage (ValidationRules table).

Every write invalidates the rule cache it is given before returning, so the
next validation in this process sees the change.
"""
import json
import uuid
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from shared import dynamo
from shared.config import config
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import logger
from shared.models import RuleType, Severity
from shared.rules import RuleConfigError, load_config, parse_rule
from shared.utils import utc_now_iso


def list_rules(rule_type: Optional[str] = None, active_only: bool = False) -> List[Dict[str, Any]]:
    """All rules (newest first), optionally filtered by type and active flag."""
    condition = None
    if rule_type:
        condition = Attr('type').eq(rule_type)
    if active_only:
        active = Attr('isActive').eq(True)
        condition = active if condition is None else condition & active

    rules = dynamo.scan(config.VALIDATION_RULES_TABLE, filter_expression=condition)
    return sorted(rules, key=lambda r: r.get('createdAt', ''), reverse=True)


def list_active(rule_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Active rules; this is the loader behind the rule cache."""
    return list_rules(rule_type=rule_type, active_only=True)


def get_rule(rule_id: str) -> Dict[str, Any]:
    rule = dynamo.get_item(config.VALIDATION_RULES_TABLE, {'ruleId': rule_id})
    if not rule:
        raise NotFoundError(f"Validation rule {rule_id} not found")
    return rule


def _find_by_name(name: str) -> List[Dict[str, Any]]:
    return dynamo.query(
        config.VALIDATION_RULES_TABLE,
        index_name='byName',
        key_condition=Key('name').eq(name)
    )


def _normalize(rule: Dict[str, Any]) -> Dict[str, Any]:
    name = (rule.get('name') or '').strip()
    rule_type = rule.get('type')
    severity = rule.get('severity', Severity.MEDIUM)

    if not name or not rule_type:
        raise ValidationError('name and type are required')
    if rule_type not in RuleType.ALL:
        raise ValidationError(f"type must be one of {', '.join(RuleType.ALL)}")
    if severity not in Severity.ALL:
        raise ValidationError(f"severity must be one of {', '.join(Severity.ALL)}")

    is_active = rule.get('isActive', True)
    if not isinstance(is_active, bool):
        raise ValidationError('isActive must be a boolean')

    try:
        cfg = load_config(rule.get('config', '{}'))
        normalized = {
            'name': name,
            'type': rule_type,
            'severity': severity,
            'isActive': is_active,
            'config': json.dumps(cfg, sort_keys=True),
        }
        # Reject configs the cache would only discard later
        parse_rule(normalized)
    except RuleConfigError as e:
        raise ValidationError(f"Invalid rule config: {e}") from e

    return normalized


def save_rule(rule: Dict[str, Any], cache) -> Dict[str, Any]:
    """
    Create (no ruleId) or update (ruleId given) a validation rule.

    Args:
        rule: name, type, severity, isActive, config (JSON string or dict)
        cache: RuleCache to invalidate once the write lands

    Raises:
        ValidationError: on missing or malformed fields
        ConflictError: if another rule already uses the name
        NotFoundError: if updating a rule that does not exist
    """
    item = _normalize(rule)
    rule_id = rule.get('ruleId')
    now = utc_now_iso()

    for existing in _find_by_name(item['name']):
        if existing.get('ruleId') != rule_id:
            raise ConflictError(f"A rule named '{item['name']}' already exists")

    if rule_id:
        current = get_rule(rule_id)
        item.update({'ruleId': rule_id, 'createdAt': current.get('createdAt', now), 'updatedAt': now})
        written = dynamo.put_item(
            config.VALIDATION_RULES_TABLE, item,
            condition_expression=Attr('ruleId').exists()
        )
        if not written:
            raise NotFoundError(f"Validation rule {rule_id} not found")
        logger.info(f"Updated validation rule {rule_id} ({item['name']})")
    else:
        item.update({'ruleId': str(uuid.uuid4()), 'createdAt': now, 'updatedAt': now})
        dynamo.put_item(
            config.VALIDATION_RULES_TABLE, item,
            condition_expression=Attr('ruleId').not_exists()
        )
        logger.info(f"Created validation rule {item['ruleId']} ({item['name']})")

    cache.invalidate()
    return item


def delete_rule(rule_id: str, cache) -> None:
    """Delete a rule and invalidate the cache."""
    deleted = dynamo.delete_item(
        config.VALIDATION_RULES_TABLE,
        {'ruleId': rule_id},
        condition_expression=Attr('ruleId').exists()
    )
    if not deleted:
        raise NotFoundError(f"Validation rule {rule_id} not found")
    logger.info(f"Deleted validation rule {rule_id}")
    cache.invalidate()
