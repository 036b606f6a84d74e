"""Task API: thin routes delegating to TaskService."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from app.api.v1.dependencies import get_task_service, valid_record_id
from app.api.v1.query import select_param, task_list_query
from app.application.dtos.query import ListQuery
from app.application.dtos.task import TaskInput
from app.application.use_cases.tasks import TaskService
from app.schemas.common import (
    MESSAGE_COUNT,
    MESSAGE_CREATED,
    MESSAGE_DELETED,
    MESSAGE_OK,
    MESSAGE_UPDATED,
    ApiResponse,
    DeletedResponse,
)
from app.schemas.task import TaskResponse, TaskWriteRequest

router = APIRouter()


def _to_input(body: TaskWriteRequest) -> TaskInput:
    return TaskInput(
        name=body.name,
        deadline=body.deadline,
        description=body.description,
        completed=body.completed,
        assigned_user_id=body.assigned_user_id,
    )


@router.get("", response_model=ApiResponse[Any])
async def list_tasks(
    query: Annotated[ListQuery, Depends(task_list_query)],
    task_svc: Annotated[TaskService, Depends(get_task_service)],
):
    """List tasks (where / select / sort / skip / limit), or count them with count=true."""
    if query.count:
        return ApiResponse(message=MESSAGE_COUNT, data=await task_svc.count_tasks(query))
    return ApiResponse(message=MESSAGE_OK, data=await task_svc.list_tasks(query))


@router.post("", response_model=ApiResponse[TaskResponse], status_code=201)
async def create_task(
    body: TaskWriteRequest,
    task_svc: Annotated[TaskService, Depends(get_task_service)],
):
    """Create a task; an assigned user gets the task in their pending list."""
    created = await task_svc.create_task(_to_input(body))
    return ApiResponse(message=MESSAGE_CREATED, data=TaskResponse.model_validate(created))


@router.get("/{id}", response_model=ApiResponse[Any])
async def get_task(
    task_id: Annotated[str, Depends(valid_record_id)],
    select: Annotated[dict[str, Any] | None, Depends(select_param)],
    task_svc: Annotated[TaskService, Depends(get_task_service)],
):
    """Get a task by id (optional select projection)."""
    return ApiResponse(message=MESSAGE_OK, data=await task_svc.get_task(task_id, select))


@router.put("/{id}", response_model=ApiResponse[TaskResponse])
async def update_task(
    task_id: Annotated[str, Depends(valid_record_id)],
    body: TaskWriteRequest,
    task_svc: Annotated[TaskService, Depends(get_task_service)],
):
    """Replace a task; old and new assignees' pending lists follow."""
    updated = await task_svc.update_task(task_id, _to_input(body))
    return ApiResponse(message=MESSAGE_UPDATED, data=TaskResponse.model_validate(updated))


@router.delete("/{id}", response_model=ApiResponse[DeletedResponse])
async def delete_task(
    task_id: Annotated[str, Depends(valid_record_id)],
    task_svc: Annotated[TaskService, Depends(get_task_service)],
):
    """Delete a task and drop it from its assignee's pending list."""
    deleted = await task_svc.delete_task(task_id)
    return ApiResponse(message=MESSAGE_DELETED, data=DeletedResponse(id=deleted.id))
