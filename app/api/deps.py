from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repository import TaskRepository
from app.db.session import get_session
from app.services.task_service import TaskDispatcher, TaskService


async def get_task_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TaskRepository:
    """Dependency to get TaskRepository instance."""
    return TaskRepository(session)


def get_dispatcher(request: Request) -> TaskDispatcher | None:
    """Dispatcher started by the application lifespan, if any."""
    return getattr(request.app.state, "dispatcher", None)


async def get_task_service(
    repository: Annotated[TaskRepository, Depends(get_task_repository)],
    dispatcher: Annotated[TaskDispatcher | None, Depends(get_dispatcher)],
) -> TaskService:
    """Dependency to get TaskService instance."""
    return TaskService(repository, dispatcher)
