"""User API: thin routes delegating to UserService."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from app.api.v1.dependencies import get_user_service, valid_record_id
from app.api.v1.query import select_param, user_list_query
from app.application.dtos.query import ListQuery
from app.application.dtos.user import UserInput
from app.application.use_cases.users import UserService
from app.schemas.common import (
    MESSAGE_COUNT,
    MESSAGE_CREATED,
    MESSAGE_DELETED,
    MESSAGE_OK,
    MESSAGE_UPDATED,
    ApiResponse,
    DeletedResponse,
)
from app.schemas.user import UserResponse, UserWriteRequest

router = APIRouter()


def _to_input(body: UserWriteRequest) -> UserInput:
    return UserInput(
        name=body.name,
        email=body.email,
        pending_task_ids=tuple(body.pending_task_ids),
    )


@router.get("", response_model=ApiResponse[Any])
async def list_users(
    query: Annotated[ListQuery, Depends(user_list_query)],
    user_svc: Annotated[UserService, Depends(get_user_service)],
):
    """List users (where / select / sort / skip / limit), or count them with count=true."""
    if query.count:
        return ApiResponse(message=MESSAGE_COUNT, data=await user_svc.count_users(query))
    return ApiResponse(message=MESSAGE_OK, data=await user_svc.list_users(query))


@router.post("", response_model=ApiResponse[UserResponse], status_code=201)
async def create_user(
    body: UserWriteRequest,
    user_svc: Annotated[UserService, Depends(get_user_service)],
):
    """Create a user; listed pending tasks that can be claimed are assigned to them."""
    created = await user_svc.create_user(_to_input(body))
    return ApiResponse(message=MESSAGE_CREATED, data=UserResponse.model_validate(created))


@router.get("/{id}", response_model=ApiResponse[Any])
async def get_user(
    user_id: Annotated[str, Depends(valid_record_id)],
    select: Annotated[dict[str, Any] | None, Depends(select_param)],
    user_svc: Annotated[UserService, Depends(get_user_service)],
):
    """Get a user by id (optional select projection)."""
    return ApiResponse(message=MESSAGE_OK, data=await user_svc.get_user(user_id, select))


@router.put("/{id}", response_model=ApiResponse[UserResponse])
async def update_user(
    user_id: Annotated[str, Depends(valid_record_id)],
    body: UserWriteRequest,
    user_svc: Annotated[UserService, Depends(get_user_service)],
):
    """Replace a user; added pending tasks are claimed, removed ones released."""
    updated = await user_svc.update_user(user_id, _to_input(body))
    return ApiResponse(message=MESSAGE_UPDATED, data=UserResponse.model_validate(updated))


@router.delete("/{id}", response_model=ApiResponse[DeletedResponse])
async def delete_user(
    user_id: Annotated[str, Depends(valid_record_id)],
    user_svc: Annotated[UserService, Depends(get_user_service)],
):
    """Delete a user; their tasks become unassigned."""
    deleted = await user_svc.delete_user(user_id)
    return ApiResponse(message=MESSAGE_DELETED, data=DeletedResponse(id=deleted.id))
