"""
Audit trail: best-effort append with late actor attribution, and queries.
"""

from src.kernel.audit.entries import AuditEntry, to_jsonable
from src.kernel.audit.audit_recorder import (
    AuditRecorder,
    log_audit,
    update_recent_audit_user,
)
from src.kernel.audit.audit_query import (
    AuditFilters,
    AuditQueryService,
    AuditRecord,
    AuditStats,
    Pagination,
)

__all__ = [
    "AuditEntry",
    "to_jsonable",
    "AuditRecorder",
    "log_audit",
    "update_recent_audit_user",
    "AuditFilters",
    "AuditQueryService",
    "AuditRecord",
    "AuditStats",
    "Pagination",
]
