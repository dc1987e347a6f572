from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.api.deps import get_task_service
from app.db.schemas import TaskCreate, TaskCreated, TaskRead
from app.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"description": "Invalid data"},
    status.HTTP_404_NOT_FOUND: {"description": "Task or source file not found"},
}

CREATE_RESPONSES = {
    **ERROR_RESPONSES,
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Source image could not be downloaded"},
}


@router.post(
    "",
    response_model=TaskCreated,
    status_code=status.HTTP_201_CREATED,
    responses=CREATE_RESPONSES,
    summary="Create a new image processing task",
)
async def create_task(
    task_in: TaskCreate, svc: Annotated[TaskService, Depends(get_task_service)]
) -> TaskCreated:
    """Create a PENDING task. Resizing runs in the background workers."""
    task = await svc.create(task_in)
    return TaskCreated.from_task(task)


@router.get(
    "/{task_id}",
    response_model=TaskRead,
    response_model_exclude_none=True,
    responses={status.HTTP_404_NOT_FOUND: {"description": "Task not found"}},
    summary="Get specific information about a task",
)
async def get_task(
    task_id: str, svc: Annotated[TaskService, Depends(get_task_service)]
) -> TaskRead:
    return await svc.find_one(task_id)


@router.post(
    "/{task_id}/retry",
    response_model=TaskRead,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    responses={status.HTTP_404_NOT_FOUND: {"description": "Task not found"}},
    summary="Reset a finished task to pending and process it again",
)
async def retry_task(
    task_id: str, svc: Annotated[TaskService, Depends(get_task_service)]
) -> TaskRead:
    task = await svc.retry(task_id)
    return TaskRead.from_task(task)
