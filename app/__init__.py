from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.errors import register_exception_handlers
from app.api.routes import tasks
from app.config import settings
from app.db.models import Base
from app.db.session import SessionLocal, engine
from app.logging_config import setup_logging
from app.services.resize_pipeline import ResizePipeline
from app.workers.pool import TaskWorkerPool

__all__ = ["__version__", "app", "create_app"]

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # start
    setup_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    pipeline = ResizePipeline(
        SessionLocal,
        output_dir=settings.output_dir,
        resolutions=settings.resolutions,
        output_url_prefix=settings.output_url_prefix,
        processing_timeout=settings.processing_timeout,
        quality=settings.jpeg_quality,
    )
    pool = TaskWorkerPool(
        pipeline.process,
        workers=settings.worker_count,
        max_queue_size=settings.queue_max_size,
    )
    await pool.start()
    app.state.dispatcher = pool
    yield
    # shutdown
    await pool.stop()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Manages image processing tasks and their current status.",
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    register_exception_handlers(app)
    app.include_router(tasks.router, prefix=settings.api_prefix)
    return app


app = create_app()
