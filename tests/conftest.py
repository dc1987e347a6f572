"""Shared pytest fixtures for unit and integration tests."""
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator
from uuid import UUID

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from PIL import Image as PILImage
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.api.errors import register_exception_handlers
from app.api.routes import tasks as tasks_router
from app.config import settings
from app.db.models import Base, Task, TaskStatus
from app.db.repository import ImageRepository, TaskRepository
from app.db.session import get_session
from app.services.resize_pipeline import ResizePipeline
from app.services.task_service import TaskService
from app.workers.pool import TaskWorkerPool

RESOLUTIONS = ["1024", "800"]


@pytest.fixture(scope="session")
def postgres_container():
    """Start a PostgreSQL container when TEST_USE_POSTGRES=1, using testcontainers."""
    if os.getenv("TEST_DATABASE_URL") or os.getenv("TEST_USE_POSTGRES") != "1":
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:14-alpine", driver="asyncpg") as postgres:
        yield postgres


@pytest.fixture
def database_url(postgres_container, tmp_path) -> str:
    test_db_url = os.getenv("TEST_DATABASE_URL")
    if test_db_url:
        return test_db_url
    if postgres_container:
        return postgres_container.get_connection_url()
    return f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}"


@pytest_asyncio.fixture
async def test_engine(database_url):
    """Create test database engine. One SQLite file per test unless a server is configured."""
    engine = create_async_engine(database_url, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session - simple setup."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def image_dirs(tmp_path, monkeypatch) -> dict[str, Path]:
    """Point the input and output roots at temporary directories."""
    dirs = {"input": tmp_path / "input", "output": tmp_path / "output"}
    for directory in dirs.values():
        directory.mkdir()
    monkeypatch.setattr(settings, "input_dir", dirs["input"])
    monkeypatch.setattr(settings, "output_dir", dirs["output"])
    return dirs


class RecordingDispatcher:
    """Collects dispatched task ids instead of running them."""

    def __init__(self) -> None:
        self.dispatched: list[UUID] = []

    async def dispatch(self, task_id: UUID) -> None:
        self.dispatched.append(task_id)


@pytest.fixture
def mock_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def task_repository(test_session) -> TaskRepository:
    """Create TaskRepository instance for unit tests."""
    return TaskRepository(test_session)


@pytest_asyncio.fixture
async def image_repository(test_session) -> ImageRepository:
    return ImageRepository(test_session)


@pytest_asyncio.fixture
async def task_service(task_repository, mock_dispatcher) -> TaskService:
    """Create TaskService instance for unit tests."""
    return TaskService(task_repository, mock_dispatcher)


@pytest.fixture
def pipeline(session_factory, image_dirs) -> ResizePipeline:
    return ResizePipeline(
        session_factory,
        output_dir=image_dirs["output"],
        resolutions=RESOLUTIONS,
        processing_timeout=30.0,
    )


@pytest_asyncio.fixture
async def worker_pool(pipeline) -> AsyncGenerator[TaskWorkerPool, None]:
    pool = TaskWorkerPool(pipeline.process, workers=2, max_queue_size=10)
    await pool.start()
    yield pool
    await pool.stop()


@pytest_asyncio.fixture
async def test_app(session_factory, worker_pool) -> FastAPI:
    """Create FastAPI test application with overridden dependencies."""

    async def get_test_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = FastAPI(title="Test Image Resize Service")
    app.dependency_overrides[get_session] = get_test_session
    app.state.dispatcher = worker_pool
    register_exception_handlers(app)
    app.include_router(tasks_router.router, prefix="/api")
    return app


@pytest_asyncio.fixture
async def test_client(test_app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create test HTTP client."""
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_image(path: Path, width: int, height: int, image_format: str = "JPEG") -> Path:
    """Write a solid-colour image for tests."""
    mode = "RGBA" if image_format == "PNG" else "RGB"
    PILImage.new(mode, (width, height), color=(200, 30, 30)).save(path, format=image_format)
    return path


@pytest.fixture
def sample_jpeg(image_dirs) -> Path:
    return make_image(image_dirs["input"] / "sample.jpg", 2048, 2048)


def create_task(**kwargs) -> Task:
    """Factory function to create Task instances for tests with defaults."""
    defaults = {
        "status": TaskStatus.PENDING,
        "price": 25.5,
        "original_path": "/tmp/input/sample.jpg",
        "images": [],
        "created_at": datetime.now(timezone.utc),
    }
    defaults.update(kwargs)
    return Task(**defaults)


async def store_task(session: AsyncSession, **kwargs) -> Task:
    task = create_task(**kwargs)
    session.add(task)
    await session.commit()
    return task
