"""Repositories for Task and Image data access operations."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Image, Task

# Dialects with INSERT ... ON CONFLICT DO NOTHING
UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class TaskRepository:

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, task: Task) -> Task:
        """Create a new task"""
        self.session.add(task)
        await self.session.flush()  # Flush to get ID and trigger database defaults
        await self.session.refresh(task)
        return task

    async def get_by_id(self, task_id: UUID, with_lock: bool = False) -> Task | None:
        """Get task by ID, optionally with row-level lock for concurrent access safety."""
        if with_lock:
            stmt = select(Task).where(Task.id == task_id).with_for_update()
            return await self.session.scalar(stmt)
        return await self.session.get(Task, task_id)

    async def update(self, task: Task) -> Task:
        """Update a task in the database. Commit is handled by session context."""
        await self.session.flush()
        await self.session.refresh(task)
        return task

    async def commit(self) -> None:
        """Make pending changes durable before other sessions rely on them."""
        await self.session.commit()


class ImageRepository:

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_path(self, path: str) -> Image | None:
        return await self.session.scalar(select(Image).where(Image.path == path))

    async def list_by_task(self, task_id: UUID) -> list[Image]:
        result = await self.session.scalars(
            select(Image).where(Image.task_id == task_id).order_by(Image.created_at)
        )
        return list(result.all())

    async def list_by_md5(self, md5: str) -> list[Image]:
        result = await self.session.scalars(select(Image).where(Image.md5 == md5))
        return list(result.all())

    async def add_if_absent(self, path: str, resolution: str, md5: str, task_id: UUID) -> Image:
        """Insert an image record unless one with the same path exists.

        Returns the stored record, which belongs to an earlier task when the
        path was already taken.
        """
        dialect = self.session.get_bind().dialect.name
        insert = UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Unsupported database dialect: {dialect}")
        stmt = (
            insert(Image)
            .values(path=path, resolution=resolution, md5=md5, task_id=task_id)
            .on_conflict_do_nothing(index_elements=[Image.path])
        )
        await self.session.execute(stmt)
        image = await self.get_by_path(path)
        if image is None:
            raise RuntimeError(f"Image record for {path} vanished after insert")
        return image
