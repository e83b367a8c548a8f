"""
Column endpoints.
"""

import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, status

from src.api.deps import CurrentUser, Positions, Recorder
from src.schemas.board import ColumnCreate, ColumnReorderRequest, ColumnResponse, ColumnUpdate
from src.schemas.common import SuccessResponse

router = APIRouter()


@router.post("", response_model=ColumnResponse, status_code=status.HTTP_201_CREATED)
async def create_column(
    data: ColumnCreate,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Add a column; an explicit position pushes later columns right."""
    outcome = await positions.insert_column(
        data.project_id,
        data.name,
        user.id,
        position=data.position,
        color=data.color,
    )
    background_tasks.add_task(recorder.record, outcome.audit)
    return outcome.value


# Declared before /{column_id} so "reorder" is not parsed as an id
@router.patch("/reorder", response_model=List[ColumnResponse])
async def reorder_columns(
    data: ColumnReorderRequest,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Replace the whole column order of a project."""
    outcome = await positions.reorder_columns(data.project_id, data.ordered_ids(), user.id)
    background_tasks.add_task(recorder.record, outcome.audit)
    return outcome.value


@router.put("/{column_id}", response_model=ColumnResponse)
async def update_column(
    column_id: uuid.UUID,
    data: ColumnUpdate,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    outcome = await positions.update_column(column_id, user.id, name=data.name, color=data.color)
    background_tasks.add_task(recorder.record, outcome.audit)
    return outcome.value


@router.delete("/{column_id}", response_model=SuccessResponse)
async def delete_column(
    column_id: uuid.UUID,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Delete an empty column."""
    outcome = await positions.delete_column(column_id, user.id)
    background_tasks.add_task(recorder.record, outcome.audit)
    return SuccessResponse(message="Column deleted successfully")
