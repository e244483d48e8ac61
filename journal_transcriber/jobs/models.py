"""Transcription job record and its state machine.

A TranscriptionJob is the persisted unit of work: one audio blob to
transcribe, owned by one user. Records are created queued and mutated
only by the TranscriptionQueue.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.QUEUED, JobStatus.FAILED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True if ``current -> target`` is a legal job transition."""
    return target in ALLOWED_TRANSITIONS[current]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        # Postgres may render UTC as "+00:00" or a trailing "Z"
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(eq=False)
class TranscriptionJob:
    """Tracks the lifecycle of one audio transcription.

    Equality and hashing are by ``id`` only.
    """

    audio_key: str
    user_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    result: str | None = None
    last_error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None
    available_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.available_at is None:
            self.available_at = self.created_at

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TranscriptionJob):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def to_record(self) -> dict[str, Any]:
        """Serialize to a ``transcription_jobs`` row."""
        return {
            "id": self.id,
            "audio_key": self.audio_key,
            "user_id": self.user_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "result": self.result,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "available_at": self.available_at.isoformat(),
        }

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> TranscriptionJob:
        """Deserialize a ``transcription_jobs`` row.

        Raises:
            ValueError: If required columns are missing or invalid.
        """
        try:
            created_at = _parse_timestamp(row["created_at"])
            return cls(
                id=row["id"],
                audio_key=row["audio_key"],
                user_id=row["user_id"],
                status=JobStatus(row["status"]),
                attempts=int(row.get("attempts") or 0),
                result=row.get("result"),
                last_error=row.get("last_error"),
                created_at=created_at,
                updated_at=_parse_timestamp(row.get("updated_at") or created_at),
                available_at=_parse_timestamp(
                    row.get("available_at") or created_at
                ),
            )
        except KeyError as exc:
            raise ValueError(f"Job row is missing column {exc}") from exc

    def to_response(self) -> dict[str, Any]:
        """Render the camelCase shape returned by the HTTP API."""
        response: dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "attempts": self.attempts,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.status == JobStatus.COMPLETED:
            response["result"] = self.result
        if self.last_error is not None:
            response["lastError"] = self.last_error
        return response
