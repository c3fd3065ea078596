"""
Authentication utilities for extracting user info from Cognito tokens,
plus the capability checks the moderation operations require.
"""
import hmac
from typing import Optional

from shared.config import config
from shared.errors import AuthenticationError, AuthorizationError
from shared.models import UserRole


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None


def get_user_groups(event: dict) -> list:
    """Extract user groups (reader, creator, moderator, admin) from Cognito claims."""
    try:
        groups = event['requestContext']['authorizer']['claims'].get('cognito:groups', '')
        if isinstance(groups, str):
            return groups.split(',') if groups else []
        return groups or []
    except (KeyError, TypeError, AttributeError):
        return []


def get_actor(event: dict) -> dict:
    """
    Build the actor dict passed into shared operations.

    Raises:
        AuthenticationError: if the request carries no identity
    """
    user_id = get_user_sub(event)
    if not user_id:
        raise AuthenticationError('Authentication required')
    return {'userId': user_id, 'groups': get_user_groups(event)}


def is_admin(actor: dict) -> bool:
    """Check if actor belongs to admin group."""
    return UserRole.ADMIN in (actor or {}).get('groups', [])


def is_moderator(actor: dict) -> bool:
    """Moderators and admins may review queue entries."""
    groups = (actor or {}).get('groups', [])
    return UserRole.MODERATOR in groups or UserRole.ADMIN in groups


def require_moderator(actor: dict) -> None:
    """Raise AuthorizationError unless the actor is a moderator or admin."""
    if not actor or not actor.get('userId'):
        raise AuthenticationError('Authentication required')
    if not is_moderator(actor):
        raise AuthorizationError('Insufficient permissions: moderator or admin required')


def require_admin(actor: dict) -> None:
    """Raise AuthorizationError unless the actor is an admin."""
    if not actor or not actor.get('userId'):
        raise AuthenticationError('Authentication required')
    if not is_admin(actor):
        raise AuthorizationError('Insufficient permissions: admin required')


def has_cron_secret(event: dict) -> bool:
    """
    Check the `Authorization: Bearer <CRON_SECRET>` header used by external schedulers.
    Always False when no secret is configured.
    """
    secret = config.CRON_SECRET
    if not secret:
        return False
    headers = event.get('headers') or {}
    auth_header = headers.get('Authorization') or headers.get('authorization') or ''
    return hmac.compare_digest(auth_header.encode(), f"Bearer {secret}".encode())
