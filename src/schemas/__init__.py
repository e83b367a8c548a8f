"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.board import (
    ProjectCreate,
    ProjectResponse,
    ColumnCreate,
    ColumnUpdate,
    ColumnResponse,
    ColumnReorderRequest,
    PositionEntry,
    TaskCreate,
    TaskUpdate,
    TaskResponse,
    TaskReorderRequest,
    BoardResponse,
)
from src.schemas.audit import AuditListResponse
from src.schemas.common import (
    ErrorResponse,
    HealthResponse,
    SuccessResponse,
)

__all__ = [
    # Board
    "ProjectCreate",
    "ProjectResponse",
    "ColumnCreate",
    "ColumnUpdate",
    "ColumnResponse",
    "ColumnReorderRequest",
    "PositionEntry",
    "TaskCreate",
    "TaskUpdate",
    "TaskResponse",
    "TaskReorderRequest",
    "BoardResponse",
    # Audit
    "AuditListResponse",
    # Common
    "ErrorResponse",
    "HealthResponse",
    "SuccessResponse",
]
