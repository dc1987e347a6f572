import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status = Column(
        Enum(TaskStatus, name="task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    original_path = Column(Text, nullable=False)
    images = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    error_message = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def mark_pending(self) -> None:
        self.status = TaskStatus.PENDING
        self.images = []
        self.error_message = None
        self.completed_at = None

    def mark_completed(self, images: list[dict[str, Any]]) -> None:
        self.status = TaskStatus.COMPLETED
        self.images = list(images)
        self.error_message = None
        self.completed_at = datetime.now(timezone.utc)

    def mark_failed(self, error: str | None) -> None:
        self.status = TaskStatus.FAILED
        self.images = []
        self.error_message = error
        self.completed_at = datetime.now(timezone.utc)


class Image(Base):
    """One resized derivative. A lookup index over Task.images, owned by no one."""

    __tablename__ = "images"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    path = Column(String(1024), nullable=False, unique=True)
    resolution = Column(String(16), nullable=False)
    md5 = Column(String(32), nullable=False, index=True)
    task_id = Column(Uuid(as_uuid=True), ForeignKey("tasks.id"), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
