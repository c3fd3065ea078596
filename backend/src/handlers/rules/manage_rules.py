"""
Manage Validation Rules Handler.
GET    /admin/validation-rules?type=safety
POST   /admin/validation-rules            (create, or update when ruleId is given)
DELETE /admin/validation-rules/{ruleId}

Admin only. Every write invalidates this container's rule cache before the
response goes out.
"""
from shared import rule_store
from shared.auth import get_actor, require_admin
from shared.context import get_rule_cache
from shared.errors import ValidationError
from shared.logging import log_event
from shared.utils import error_response, format_response, get_path_param, get_query_param, parse_body


def handler(event, context):
    log_event(event)
    try:
        require_admin(get_actor(event))
        method = (event.get('httpMethod') or 'GET').upper()

        if method == 'GET':
            rules = rule_store.list_rules(rule_type=get_query_param(event, 'type'))
            return format_response(200, {'rules': rules})

        if method in ('POST', 'PUT'):
            body = parse_body(event)
            rule_id = get_path_param(event, 'ruleId')
            if rule_id:
                body['ruleId'] = rule_id
            created = not body.get('ruleId')
            rule = rule_store.save_rule(body, get_rule_cache())
            return format_response(201 if created else 200, {'success': True, 'rule': rule})

        if method == 'DELETE':
            rule_id = get_path_param(event, 'ruleId')
            if not rule_id:
                raise ValidationError('ruleId is required')
            rule_store.delete_rule(rule_id, get_rule_cache())
            return format_response(200, {'success': True, 'ruleId': rule_id})

        return format_response(405, {'message': f'Method {method} not allowed'})

    except Exception as e:
        return error_response(e, 'manage validation rules')
