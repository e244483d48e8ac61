"""Custom exception hierarchy for the transcription service.

All exceptions inherit from TranscriptionError, enabling targeted handling
at the queue and HTTP boundaries while preserving specific failure context.
"""


class TranscriptionError(Exception):
    """Base exception for all transcription service errors."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[job={self.job_id}] {super().__str__()}"
        return super().__str__()


class AuthError(TranscriptionError):
    """Raised when a bearer credential is missing or cannot be verified."""


class InvalidRequestError(TranscriptionError):
    """Raised when a request is missing required fields."""

    def __init__(
        self, message: str, job_id: str | None = None, field: str | None = None
    ) -> None:
        self.field = field
        super().__init__(message, job_id)


class AudioFetchError(TranscriptionError):
    """Raised when fetching audio from the blob store fails."""

    def __init__(
        self, message: str, job_id: str | None = None, key: str | None = None
    ) -> None:
        self.key = key
        super().__init__(message, job_id)


class SpeechToTextError(TranscriptionError):
    """Raised when the speech-to-text provider fails or times out."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.provider = provider
        super().__init__(message, job_id)


class StorageError(TranscriptionError):
    """Raised when blob storage operations or storage setup fail."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, job_id)


class JobStoreError(StorageError):
    """Raised when the job record store is unreachable or rejects a write.

    This is an infrastructure failure: it aborts the batch and surfaces
    as HTTP 500, unlike per-job fetch or transcription failures.
    """
