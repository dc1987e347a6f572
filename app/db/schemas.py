import re
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.db.models import Task, TaskStatus

LOCAL_PATH_PATTERN = re.compile(r"/.*\.(jpg|jpeg|png|gif)", re.IGNORECASE)
INVALID_LOCAL_PATH = "The path must start with / and have a valid image extension"


class ImageInfo(BaseModel):
    resolution: str
    path: str


class TaskCreate(BaseModel):
    """Creation request. Exactly one of ``url`` or ``localPath`` is expected."""

    url: str | None = None
    local_path: str | None = Field(default=None, alias="localPath")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("local_path")
    @classmethod
    def check_local_path(cls, value: str | None) -> str | None:
        if value is not None and not LOCAL_PATH_PATTERN.fullmatch(value):
            raise ValueError(INVALID_LOCAL_PATH)
        return value


class TaskCreated(BaseModel):
    task_id: UUID = Field(alias="taskId")
    status: TaskStatus
    price: float

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_task(cls, task: Task) -> "TaskCreated":
        return cls(task_id=task.id, status=task.status, price=task.price)


class TaskRead(BaseModel):
    task_id: UUID = Field(alias="taskId")
    status: TaskStatus
    price: float
    images: list[ImageInfo] | None = None
    error_message: str | None = Field(default=None, alias="errorMessage")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_task(cls, task: Task) -> "TaskRead":
        """Build the view. Images only when completed, error only when failed."""
        view = cls(task_id=task.id, status=task.status, price=task.price)
        if task.status == TaskStatus.COMPLETED:
            view.images = [ImageInfo.model_validate(image) for image in task.images or []]
        if task.status == TaskStatus.FAILED:
            view.error_message = task.error_message
        return view


class PendingUpdate(BaseModel):
    status: Literal[TaskStatus.PENDING] = TaskStatus.PENDING


class CompletedUpdate(BaseModel):
    status: Literal[TaskStatus.COMPLETED] = TaskStatus.COMPLETED
    images: list[ImageInfo]


class FailedUpdate(BaseModel):
    status: Literal[TaskStatus.FAILED] = TaskStatus.FAILED
    error_message: str | None = None


TaskStatusUpdate = Annotated[
    PendingUpdate | CompletedUpdate | FailedUpdate, Field(discriminator="status")
]
