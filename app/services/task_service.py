"""Service layer for Task business logic."""

import logging
import random
import uuid
from pathlib import Path
from typing import Awaitable, Protocol
from uuid import UUID

from pydantic import HttpUrl, TypeAdapter, ValidationError

from app.config import settings
from app.db.models import Task, TaskStatus
from app.db.repository import TaskRepository
from app.db.schemas import (
    CompletedUpdate,
    FailedUpdate,
    PendingUpdate,
    TaskCreate,
    TaskRead,
    TaskStatusUpdate,
)
from app.services.exceptions import InvalidRequest, SourceNotFound, TaskNotFound
from app.utils.files import download_image, url_file_extension

logger = logging.getLogger(__name__)

MIN_PRICE = 5.0
MAX_PRICE = 50.0

_http_url = TypeAdapter(HttpUrl)


class TaskDispatcher(Protocol):
    def dispatch(self, task_id: UUID) -> Awaitable[None]: ...


def parse_task_id(task_id: str | UUID) -> UUID:
    """Parse a task id. Malformed ids are reported exactly like missing ones."""
    if isinstance(task_id, UUID):
        return task_id
    try:
        return UUID(task_id)
    except (TypeError, ValueError) as exc:
        raise TaskNotFound(f"Task not found: {task_id}") from exc


class TaskService:
    """Service for Task business logic. Processing runs detached, through the dispatcher."""

    def __init__(self, repository: TaskRepository, dispatcher: TaskDispatcher | None = None) -> None:
        self.repository = repository
        self.dispatcher = dispatcher

    async def create(self, payload: TaskCreate) -> Task:
        """Create a PENDING task for a URL or a local path and hand it to the workers."""
        if not payload.url and not payload.local_path:
            raise InvalidRequest("URL or local image path needed.")
        if payload.url and payload.local_path:
            raise InvalidRequest("Provide either a URL or a local image path, not both.")

        logger.info(f"Creating a new processing task url={payload.url} local_path={payload.local_path}")

        if payload.url:
            original_path = await self._fetch_source(payload.url)
        else:
            original_path = Path(payload.local_path).absolute()
            if not original_path.exists():
                logger.error(f"File not found: {original_path}")
                raise SourceNotFound(f"File not found: {original_path}")

        task = Task(
            status=TaskStatus.PENDING,
            price=round(random.uniform(MIN_PRICE, MAX_PRICE), 2),
            original_path=str(original_path),
            images=[],
        )
        task = await self.repository.create(task)
        # Must be durable before a worker can look it up
        await self.repository.commit()
        logger.info(f"Task {task.id} created with price {task.price}")

        await self._dispatch(task.id)
        return task

    async def get(self, task_id: UUID, for_update: bool = False) -> Task | None:
        """Get a task by ID. ``for_update`` holds the row until the session ends."""
        return await self.repository.get_by_id(task_id, with_lock=for_update)

    async def find_one(self, task_id: str | UUID) -> TaskRead:
        """Get the client view of a task, or raise TaskNotFound."""
        logger.debug(f"Searching for task {task_id}")
        task = await self.repository.get_by_id(parse_task_id(task_id))
        if not task:
            logger.warning(f"Task not found: {task_id}")
            raise TaskNotFound(f"Task not found: {task_id}")
        return TaskRead.from_task(task)

    async def update_task_status(self, task_id: str | UUID, update: TaskStatusUpdate) -> Task:
        """Apply a status transition to a task."""
        task = await self.repository.get_by_id(parse_task_id(task_id))
        if not task:
            logger.warning(f"Task not found: {task_id}")
            raise TaskNotFound(f"Task not found: {task_id}")

        if isinstance(update, PendingUpdate):
            task.mark_pending()
        elif isinstance(update, CompletedUpdate):
            task.mark_completed([image.model_dump() for image in update.images])
        elif isinstance(update, FailedUpdate):
            if not update.error_message:
                logger.warning(f"Task {task_id} marked as FAILED without an error message")
            else:
                logger.error(f"Failed task {task_id}: {update.error_message}")
            task.mark_failed(update.error_message)
        else:
            raise TypeError(f"Unsupported status update: {update!r}")

        task = await self.repository.update(task)
        logger.info(f"Task {task_id} updated to {task.status.value}")
        return task

    async def retry(self, task_id: str | UUID) -> Task:
        """Reset a finished task to PENDING and dispatch it again."""
        task = await self.repository.get_by_id(parse_task_id(task_id))
        if not task:
            raise TaskNotFound(f"Task not found: {task_id}")
        if task.status == TaskStatus.PENDING:
            return task

        task = await self.update_task_status(task.id, PendingUpdate())
        await self.repository.commit()
        await self._dispatch(task.id)
        return task

    async def _fetch_source(self, url: str) -> Path:
        try:
            _http_url.validate_python(url)
        except ValidationError as exc:
            raise InvalidRequest("Malformed URL") from exc

        file_name = f"{uuid.uuid4().hex}{url_file_extension(url)}"
        destination = Path(settings.input_dir).absolute() / file_name
        logger.debug(f"Downloading image of URL {url} to {destination}")
        return await download_image(url, destination, timeout=settings.download_timeout)

    async def _dispatch(self, task_id: UUID) -> None:
        if self.dispatcher is None:
            logger.warning(f"No dispatcher configured, task {task_id} stays PENDING")
            return
        try:
            await self.dispatcher.dispatch(task_id)
        except Exception as exc:  # noqa: BLE001
            # Already stored; the task stays PENDING
            logger.error(f"Failed to dispatch task {task_id}: {exc}", exc_info=True)
