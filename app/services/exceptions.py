"""Error taxonomy for task creation, lookup and image processing."""

from fastapi import status


class TaskServiceError(Exception):
    """Base class for errors raised by the task service and the resize pipeline."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(TaskServiceError):
    """Caller-supplied input failed a precondition."""

    status_code = status.HTTP_400_BAD_REQUEST


class SourceNotFound(TaskServiceError):
    """The referenced source image is not on disk."""

    status_code = status.HTTP_404_NOT_FOUND


class DownloadFailed(TaskServiceError):
    """Fetching a remote source image failed."""


class TaskNotFound(TaskServiceError):
    """The task id is unknown or is not a valid identifier."""

    status_code = status.HTTP_404_NOT_FOUND


class ProcessingFailed(TaskServiceError):
    """Deriving a resized image failed. Recorded on the task, never returned over HTTP."""


class ImageDecodeError(ProcessingFailed):
    pass


class ImageWriteError(ProcessingFailed):
    pass


class ProcessingTimeout(ProcessingFailed):
    pass
