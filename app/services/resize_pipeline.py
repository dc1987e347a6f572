"""Derives the resized variants of a task's source image and records the outcome."""

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Task
from app.db.repository import ImageRepository, TaskRepository
from app.db.schemas import CompletedUpdate, FailedUpdate, ImageInfo
from app.services.exceptions import ImageWriteError, ProcessingTimeout, SourceNotFound
from app.services.task_service import TaskService
from app.utils.files import calculate_md5, ensure_directory_exists, get_file_extension
from app.utils.images import resize_image

logger = logging.getLogger(__name__)


class ResizePipeline:
    """Produces one width-bounded copy of a task's source per configured resolution.

    Resolutions are processed in order and all of them must succeed: the task
    ends COMPLETED with every image, or FAILED with none. ``process`` never
    raises, because it runs detached from the request that created the task.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        output_dir: str | Path,
        resolutions: Sequence[str],
        output_url_prefix: str = "/output",
        processing_timeout: float | None = None,
        quality: int = 85,
    ) -> None:
        self._session_factory = session_factory
        self.output_dir = Path(output_dir)
        self.resolutions = list(resolutions)
        self.output_url_prefix = output_url_prefix.rstrip("/")
        self.processing_timeout = processing_timeout or None
        self.quality = quality

    async def process(self, task_id: UUID) -> None:
        logger.info(f"Starting to process task {task_id}")
        try:
            async with self._session_factory() as session:
                await self._process(session, task_id)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Error processing task {task_id}: {exc}", exc_info=True)

    async def _process(self, session: AsyncSession, task_id: UUID) -> None:
        service = TaskService(TaskRepository(session))
        task = await service.get(task_id, for_update=True)
        if not task:
            logger.warning(f"Task {task_id} not found, skipping")
            return

        created_files: list[Path] = []
        try:
            images = await self._derive_all(task, ImageRepository(session), created_files)
            await service.update_task_status(task_id, CompletedUpdate(images=images))
            await session.commit()
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Task {task_id} failed: {exc}", exc_info=True)
            await session.rollback()
            self._discard(created_files)
            error_message = str(exc) if str(exc) else repr(exc)
            await service.update_task_status(task_id, FailedUpdate(error_message=error_message))
            await session.commit()
            return

        logger.info(f"Task {task_id} completed with {len(images)} image(s)")

    async def _derive_all(
        self, task: Task, images: ImageRepository, created_files: list[Path]
    ) -> list[ImageInfo]:
        source = Path(task.original_path)
        if not source.is_file():
            raise SourceNotFound(f"File does not exist. Cannot locate file: {source}")

        logger.debug(f"Calculating hash of {source} for task {task.id}")
        md5 = await asyncio.to_thread(calculate_md5, source)

        results = []
        for resolution in self.resolutions:
            logger.debug(f"Processing resolution {resolution} for task {task.id}")
            info = await self._derive(task, source, md5, resolution, images, created_files)
            results.append(info)
            logger.debug(f"Resolution {resolution} processed for task {task.id}: {info.path}")
        return results

    async def _derive(
        self,
        task: Task,
        source: Path,
        md5: str,
        resolution: str,
        images: ImageRepository,
        created_files: list[Path],
    ) -> ImageInfo:
        extension = get_file_extension(source)
        file_name = f"{md5}{extension}"
        relative_path = f"{self.output_url_prefix}/{source.stem}/{resolution}/{file_name}"

        try:
            output_dir = ensure_directory_exists(self.output_dir / source.stem / resolution)
        except OSError as exc:
            raise ImageWriteError(f"Failed to write image: {self.output_dir} ({exc})") from exc
        destination = output_dir / file_name

        existing = await images.get_by_path(relative_path)
        if existing is not None and destination.is_file():
            # Identical source bytes were already derived at this resolution
            logger.info(f"Reusing {relative_path} from task {existing.task_id}")
        else:
            await self._resize(source, destination, int(resolution))
            created_files.append(destination)

        await images.add_if_absent(
            path=relative_path, resolution=resolution, md5=md5, task_id=task.id
        )
        return ImageInfo(resolution=resolution, path=relative_path)

    async def _resize(self, source: Path, destination: Path, width: int) -> None:
        partial = destination.with_name(f".{destination.name}.partial")
        abandoned = threading.Event()
        work = asyncio.to_thread(
            _resize_to_partial, source, partial, width, self.quality, abandoned
        )
        try:
            await asyncio.wait_for(work, timeout=self.processing_timeout)
        except asyncio.TimeoutError as exc:
            # The worker thread cannot be interrupted; it removes its own output
            abandoned.set()
            partial.unlink(missing_ok=True)
            raise ProcessingTimeout(
                f"Image processing timed out after {self.processing_timeout}s: {source}"
            ) from exc
        try:
            os.replace(partial, destination)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise ImageWriteError(f"Failed to write image: {destination} ({exc})") from exc

    @staticmethod
    def _discard(paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(f"Could not remove {path}: {exc}")


def _resize_to_partial(
    source: Path, partial: Path, width: int, quality: int, abandoned: threading.Event
) -> None:
    """Runs in a worker thread. Output written after a timeout is removed here."""
    try:
        resize_image(source, partial, width, quality)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    if abandoned.is_set():
        partial.unlink(missing_ok=True)
