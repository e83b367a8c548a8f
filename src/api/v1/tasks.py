"""
Task endpoints.
"""

import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, status

from src.api.deps import CurrentUser, Positions, Recorder
from src.schemas.board import TaskCreate, TaskReorderRequest, TaskResponse, TaskUpdate
from src.schemas.common import SuccessResponse

router = APIRouter()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Create a task at the end of its column."""
    outcome = await positions.create_task(
        data.column_id,
        user.id,
        data.title,
        project_id=data.project_id,
        description=data.description,
        priority=data.priority,
        tags=data.tags,
        due_date=data.due_date,
        assignee_id=data.assignee_id,
    )
    background_tasks.add_task(recorder.record, outcome.audit)
    return outcome.value


@router.patch("/reorder", response_model=List[TaskResponse])
async def reorder_tasks(
    data: TaskReorderRequest,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Replace the whole task order of one column."""
    outcome = await positions.reorder_tasks_in_column(data.column_id, data.ordered_ids(), user.id)
    background_tasks.add_task(recorder.record, outcome.audit)
    return outcome.value


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: uuid.UUID,
    data: TaskUpdate,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """
    Edit a task. A column_id and/or position moves it in the same transaction.
    """
    changes = data.model_dump(exclude_unset=True)
    target_column_id = changes.pop("column_id", None)
    target_position = changes.pop("position", None)

    outcome = await positions.update_task(
        task_id,
        user.id,
        changes,
        target_column_id=target_column_id,
        target_position=target_position,
    )
    background_tasks.add_task(recorder.record, outcome.audit)
    return outcome.value


@router.delete("/{task_id}", response_model=SuccessResponse)
async def delete_task(
    task_id: uuid.UUID,
    user: CurrentUser,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Delete a task. Members may only delete their own."""
    outcome = await positions.delete_task(task_id, user.id)
    background_tasks.add_task(recorder.record, outcome.audit)
    return SuccessResponse(message="Task deleted successfully")
