"""Supabase-backed job store.

Job records live in the ``transcription_jobs`` table. The claim and
outcome writes are single conditional UPDATE statements filtered on the
expected status, so two batch passes racing for the same row cannot both
succeed. The Supabase SDK is blocking; calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from journal_transcriber.jobs.models import JobStatus, TranscriptionJob
from journal_transcriber.jobs.store import JobStore
from journal_transcriber.utils.errors import JobStoreError

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "transcription_jobs"


class SupabaseJobStore(JobStore):
    """Job store over a Supabase (PostgREST) table.

    Args:
        client: Service-role Supabase client.
        table: Table name (default from JOBS_TABLE, then
            ``transcription_jobs``).
    """

    def __init__(self, client: Client, table: str | None = None) -> None:
        self._client = client
        self.table = table or os.environ.get("JOBS_TABLE", DEFAULT_TABLE)

    async def _execute(
        self, operation: str, build: Any, job_id: str | None = None
    ) -> list[dict]:
        """Run a query builder in a thread and translate failures.

        Args:
            operation: Name used in error messages.
            build: Zero-argument callable returning a PostgREST query.
            job_id: Job the query concerns, if any.

        Returns:
            The ``data`` rows of the response.

        Raises:
            JobStoreError: If the request fails.
        """
        try:
            response = await asyncio.to_thread(lambda: build().execute())
        except (APIError, httpx.HTTPError) as exc:
            raise JobStoreError(
                f"Job store {operation} failed on '{self.table}': {exc}",
                job_id=job_id,
                operation=operation,
            ) from exc
        return response.data or []

    async def insert(self, job: TranscriptionJob) -> None:
        await self._execute(
            "insert",
            lambda: self._client.table(self.table).insert(job.to_record()),
            job_id=job.id,
        )

    async def get(self, job_id: str) -> TranscriptionJob | None:
        rows = await self._execute(
            "get",
            lambda: self._client.table(self.table)
            .select("*")
            .eq("id", job_id)
            .limit(1),
            job_id=job_id,
        )
        return TranscriptionJob.from_record(rows[0]) if rows else None

    async def find_claimable(
        self, limit: int, now: datetime, stale_before: datetime | None = None
    ) -> list[TranscriptionJob]:
        rows = await self._execute(
            "find_claimable",
            lambda: self._client.table(self.table)
            .select("*")
            .eq("status", JobStatus.QUEUED.value)
            .lte("available_at", now.isoformat())
            .order("created_at")
            .limit(limit),
        )
        jobs = [TranscriptionJob.from_record(row) for row in rows]
        if stale_before is None:
            return jobs

        stale_rows = await self._execute(
            "find_claimable",
            lambda: self._client.table(self.table)
            .select("*")
            .eq("status", JobStatus.PROCESSING.value)
            .lte("updated_at", stale_before.isoformat())
            .order("created_at")
            .limit(limit),
        )
        jobs.extend(TranscriptionJob.from_record(row) for row in stale_rows)
        jobs.sort(key=lambda job: job.created_at)
        return jobs[:limit]

    async def claim(
        self, job: TranscriptionJob, now: datetime
    ) -> TranscriptionJob | None:
        rows = await self._execute(
            "claim",
            lambda: self._client.table(self.table)
            .update(
                {
                    "status": JobStatus.PROCESSING.value,
                    "attempts": job.attempts + 1,
                    "updated_at": now.isoformat(),
                }
            )
            .eq("id", job.id)
            .eq("status", job.status.value)
            .eq("attempts", job.attempts),
            job_id=job.id,
        )
        if not rows:
            logger.debug("Claim lost for job %s", job.id, extra={"job_id": job.id})
            return None
        return TranscriptionJob.from_record(rows[0])

    async def save_outcome(self, job: TranscriptionJob) -> bool:
        rows = await self._execute(
            "save_outcome",
            lambda: self._client.table(self.table)
            .update(
                {
                    "status": job.status.value,
                    "result": job.result,
                    "last_error": job.last_error,
                    "available_at": job.available_at.isoformat(),
                    "updated_at": job.updated_at.isoformat(),
                }
            )
            .eq("id", job.id)
            .eq("status", JobStatus.PROCESSING.value),
            job_id=job.id,
        )
        return bool(rows)
