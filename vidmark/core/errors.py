from fastapi import status


class VidmarkError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidParameters(VidmarkError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid parameters"


class NotFound(VidmarkError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class JobConflict(VidmarkError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Job is not in a state that allows this operation"


class FetchError(VidmarkError):
    default_message = "Failed to fetch remote object"


class UploadError(VidmarkError):
    default_message = "Failed to upload object"


class DatabaseError(VidmarkError):
    default_message = "Record store rejected the write"


class ProcessError(VidmarkError):
    MESSAGE_TAIL_CHARS = 1000

    def __init__(self, exit_code: int | None, diagnostic_text: str = "", message: str | None = None) -> None:
        self.exit_code = exit_code
        self.diagnostic_text = diagnostic_text
        if message is None:
            tail = diagnostic_text.strip()[-self.MESSAGE_TAIL_CHARS :]
            if exit_code is None:
                message = f"ffmpeg failed to run: {tail}" if tail else "ffmpeg failed to run"
            else:
                message = f"ffmpeg failed with code {exit_code}: {tail}" if tail else f"ffmpeg failed with code {exit_code}"
        super().__init__(message)


class DispatchError(VidmarkError):
    default_message = "Failed to hand the job to a background worker"
