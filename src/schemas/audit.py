"""
Audit trail response schemas.
"""

from typing import List

from pydantic import BaseModel

from src.kernel.audit.audit_query import AuditRecord, Pagination


class AuditListResponse(BaseModel):
    """One page of audit rows."""

    logs: List[AuditRecord]
    pagination: Pagination
