"""Job store interface and in-memory implementation.

The store is the only shared mutable resource of the queue. Every state
change goes through a conditional write: ``claim`` succeeds only while the
record still has the status and attempt count the caller read, and
``save_outcome`` only while it is processing.
Those two checks are what keep concurrent batch passes from processing the
same job twice or rewriting a terminal record.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime

from journal_transcriber.jobs.models import (
    JobStatus,
    TranscriptionJob,
    can_transition,
)
from journal_transcriber.utils.errors import JobStoreError

_CLAIMABLE_STATUSES = (JobStatus.QUEUED, JobStatus.PROCESSING)


class JobStore(ABC):
    """Abstract persistence interface for transcription jobs."""

    @abstractmethod
    async def insert(self, job: TranscriptionJob) -> None:
        """Persist a newly created job.

        Raises:
            JobStoreError: If the record cannot be written.
        """

    @abstractmethod
    async def get(self, job_id: str) -> TranscriptionJob | None:
        """Return the job with ``job_id``, or None if it does not exist."""

    @abstractmethod
    async def find_claimable(
        self, limit: int, now: datetime, stale_before: datetime | None = None
    ) -> list[TranscriptionJob]:
        """Return up to ``limit`` jobs a batch pass may claim.

        That is queued jobs whose ``available_at <= now`` and, when
        ``stale_before`` is given, processing jobs whose ``updated_at`` is
        at or before it (their processing lease has expired). Results are
        ordered oldest-first by ``created_at``.
        """

    @abstractmethod
    async def claim(
        self, job: TranscriptionJob, now: datetime
    ) -> TranscriptionJob | None:
        """Atomically move ``job`` to processing.

        Increments ``attempts`` and refreshes ``updated_at``. The update only
        applies if the stored record still has the status (queued, or
        processing for an expired lease) and attempt count of ``job``.

        Returns:
            The claimed record, or None if another runner claimed it first.
        """

    @abstractmethod
    async def save_outcome(self, job: TranscriptionJob) -> bool:
        """Write the outcome fields of a job that is currently processing.

        Writes status, result, last_error, available_at and updated_at.

        Returns:
            False if the stored record was no longer processing.
        """


class InMemoryJobStore(JobStore):
    """Process-local job store for development and tests.

    Records are copied on the way in and out so callers can never mutate
    stored state except through the conditional operations.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, TranscriptionJob] = {}
        self._lock = asyncio.Lock()

    async def insert(self, job: TranscriptionJob) -> None:
        async with self._lock:
            if job.id in self._jobs:
                raise JobStoreError(
                    f"Job '{job.id}' already exists",
                    job_id=job.id,
                    operation="insert",
                )
            self._jobs[job.id] = copy.copy(job)

    async def get(self, job_id: str) -> TranscriptionJob | None:
        async with self._lock:
            job = self._jobs.get(job_id)
            return copy.copy(job) if job is not None else None

    async def find_claimable(
        self, limit: int, now: datetime, stale_before: datetime | None = None
    ) -> list[TranscriptionJob]:
        async with self._lock:
            candidates = [
                job
                for job in self._jobs.values()
                if (job.status == JobStatus.QUEUED and job.available_at <= now)
                or (
                    stale_before is not None
                    and job.status == JobStatus.PROCESSING
                    and job.updated_at <= stale_before
                )
            ]
            candidates.sort(key=lambda job: job.created_at)
            return [copy.copy(job) for job in candidates[:limit]]

    async def claim(
        self, job: TranscriptionJob, now: datetime
    ) -> TranscriptionJob | None:
        async with self._lock:
            stored = self._jobs.get(job.id)
            if (
                stored is None
                or stored.status not in _CLAIMABLE_STATUSES
                or stored.status != job.status
                or stored.attempts != job.attempts
            ):
                return None
            claimed = replace(
                stored,
                status=JobStatus.PROCESSING,
                attempts=stored.attempts + 1,
                updated_at=now,
            )
            self._jobs[job.id] = claimed
            return copy.copy(claimed)

    async def save_outcome(self, job: TranscriptionJob) -> bool:
        async with self._lock:
            stored = self._jobs.get(job.id)
            if (
                stored is None
                or stored.status != JobStatus.PROCESSING
                or not can_transition(stored.status, job.status)
            ):
                return False
            self._jobs[job.id] = replace(
                stored,
                status=job.status,
                result=job.result,
                last_error=job.last_error,
                available_at=job.available_at,
                updated_at=job.updated_at,
            )
            return True
