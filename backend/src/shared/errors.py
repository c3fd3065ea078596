"""
Error classes for the moderation pipeline.

Each error carries the HTTP status code handlers answer with, so a handler
only needs one except clause for the whole taxonomy.
"""
from typing import Any, Dict, Optional


class ChaptursError(Exception):
    """Base exception for all pipeline errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        body = {
            'error': self.__class__.__name__,
            'message': self.message,
        }
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(ChaptursError):
    """Malformed input: content missing, rating out of range, unknown action."""
    status_code = 400


class AuthorizationError(ChaptursError):
    """Caller lacks the required capability or identity match."""
    status_code = 403


class AuthenticationError(AuthorizationError):
    """No caller identity on the request."""
    status_code = 401


class NotFoundError(ChaptursError):
    """Referenced entry, job, deal or variant does not exist."""
    status_code = 404


class ConflictError(ChaptursError):
    """
    The request clashes with current state.

    A repeated vote is never a conflict; votes are upserted.
    """
    status_code = 409


class InvalidTransitionError(ConflictError):
    """A state machine was asked for a transition it does not have."""

    def __init__(self, current: str, action: str, what: str = 'entry'):
        super().__init__(
            f"Cannot {action} {what} in status '{current}'",
            details={'status': current, 'action': action}
        )
        self.current = current
        self.action = action


class TransientCollaboratorError(ChaptursError):
    """A best-effort external service (similarity, image analysis) is unreachable."""
    status_code = 503

    def __init__(self, service: str, reason: str):
        super().__init__(f"{service} unavailable: {reason}", details={'service': service})
        self.service = service
        self.reason = reason


class PersistenceError(ChaptursError):
    """The data store is unavailable or rejected the request."""
    status_code = 503
