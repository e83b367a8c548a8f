"""
Audit entry value type and payload serialization.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional

from src.kernel.models.audit_log import AuditAction, EntityType
from src.logging_config import get_request_id


@dataclass(frozen=True)
class AuditEntry:
    """
    One pending audit row.

    Built by mutators while the request context is alive so the correlation
    id is captured before the entry is handed to a background task.
    """

    project_id: Optional[uuid.UUID]
    action: AuditAction
    entity_type: EntityType
    entity_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    details: Dict[str, Any] = field(default_factory=dict)
    correlation_id: Optional[str] = field(default_factory=get_request_id)


def to_jsonable(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Convert payload values to JSON-serializable types."""
    return {key: _jsonable_value(value) for key, value in payload.items()}


def _jsonable_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(value.value, str):
        return value.value
    if isinstance(value, dict):
        return to_jsonable(value)
    if isinstance(value, (list, tuple, set)):
        return [_jsonable_value(v) for v in value]
    return value
