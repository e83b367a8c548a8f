"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import audit, columns, projects, tasks

router = APIRouter()

router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(columns.router, prefix="/columns", tags=["Columns"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(audit.router, prefix="/audit", tags=["Audit"])
