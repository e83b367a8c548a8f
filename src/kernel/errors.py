"""
Error taxonomy for the board core.

Every error carries the HTTP status the API layer maps it to. Store
failures are not wrapped here; they propagate as SQLAlchemy errors and
surface as generic 500s.
"""

from typing import Any, Dict, Optional


class BoardError(Exception):
    """Base class for expected, caller-visible failures."""

    status_code: int = 400
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


# Authorization (403, never retried automatically)

class AuthorizationError(BoardError):
    status_code = 403
    default_message = "Access denied"


class NotAMember(AuthorizationError):
    default_message = "Access denied. Not a member of this project."


class InsufficientRole(AuthorizationError):
    default_message = "Access denied. Insufficient permissions."


# Input validation (400, no state change)

class InvalidReorderSet(BoardError):
    default_message = "Submitted ids do not match the current set exactly"


class CrossProjectMoveRejected(BoardError):
    default_message = "Target column belongs to a different project"


class InvalidQuery(BoardError):
    default_message = "Invalid audit query"


class ColumnNotEmpty(BoardError):
    default_message = "Cannot delete column with tasks. Please move or delete tasks first."


# Lookups (404)

class NotFound(BoardError):
    status_code = 404
    default_message = "Not found"


class ProjectNotFound(NotFound):
    default_message = "Project not found"


class ColumnNotFound(NotFound):
    default_message = "Column not found"


class TaskNotFound(NotFound):
    default_message = "Task not found"


class AuditLogNotFound(NotFound):
    default_message = "Audit log not found"
