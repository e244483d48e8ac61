"""Transcription job queue.

Owns the job lifecycle: enqueue, batch claim, fetch -> transcribe, and
write-back of the outcome under the retry policy.

    queued --(claimed by batch)--> processing
    processing --(success)--> completed
    processing --(failure, attempts < max)--> queued
    processing --(failure, attempts >= max)--> failed
    processing --(lease expired, attempts < max)--> processing (reclaimed)
    processing --(lease expired, attempts >= max)--> failed

The claim (-> processing) is a conditional write in the job store
and is the only coordination between concurrent batch passes. Per-job
failures are contained; only job store failures escape a batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from journal_transcriber.jobs.models import JobStatus, TranscriptionJob, utc_now
from journal_transcriber.jobs.store import JobStore
from journal_transcriber.observability.metrics import (
    JobMetrics,
    StageTimer,
    log_job_metrics,
)
from journal_transcriber.storage.blob_store import BlobStore
from journal_transcriber.storage.mime import get_mime_type
from journal_transcriber.stt.interface import SpeechToTextEngine
from journal_transcriber.utils.errors import (
    InvalidRequestError,
    JobStoreError,
    SpeechToTextError,
)
from journal_transcriber.utils.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_TRANSCRIBE_TIMEOUT_SECONDS = 60.0


class TranscriptionQueue:
    """Durable, at-least-once scheduling of transcription work.

    Constructed once per process and handed to the HTTP layer.

    Args:
        store: Job record persistence.
        blob_store: Source of recorded audio bytes.
        stt_engine: Speech-to-text provider.
        batch_size: Maximum jobs claimed per ``process_next_batch`` call.
        retry_policy: Job-level attempt limit and backoff.
        transcribe_timeout: Seconds allowed for one provider call.
        clock: Returns the current UTC time.
        outcome_write_retries: In-process retries when writing a job's
            outcome hits a job store error.
        outcome_write_delay: Base backoff for those retries.
        processing_lease: Seconds after which a job still processing is
            presumed abandoned and may be claimed again. Defaults to twice
            ``transcribe_timeout``.
    """

    def __init__(
        self,
        store: JobStore,
        blob_store: BlobStore,
        stt_engine: SpeechToTextEngine,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_policy: RetryPolicy | None = None,
        transcribe_timeout: float = DEFAULT_TRANSCRIBE_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        outcome_write_retries: int = 2,
        outcome_write_delay: float = 0.5,
        processing_lease: float | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._store = store
        self._blob_store = blob_store
        self._stt_engine = stt_engine
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.transcribe_timeout = transcribe_timeout
        self.processing_lease = (
            processing_lease
            if processing_lease is not None
            else 2 * transcribe_timeout
        )
        if self.processing_lease <= 0:
            raise ValueError("processing_lease must be positive")
        self._clock = clock
        self._write_outcome = retry_with_backoff(
            max_retries=outcome_write_retries,
            base_delay=outcome_write_delay,
            retryable_exceptions=(JobStoreError,),
        )(store.save_outcome)

    async def enqueue_job(self, audio_key: str, user_id: str) -> str:
        """Create a queued job and return its id.

        Does no transcription work and never contacts the blob store or
        the speech-to-text provider.

        Raises:
            InvalidRequestError: If audio_key or user_id is empty.
            JobStoreError: If the record cannot be persisted.
        """
        if not audio_key:
            raise InvalidRequestError("audio_key is required", field="audio_key")
        if not user_id:
            raise InvalidRequestError("user_id is required", field="user_id")

        job = TranscriptionJob(
            audio_key=audio_key, user_id=user_id, created_at=self._clock()
        )
        await self._store.insert(job)
        logger.info(
            "Enqueued transcription job %s for %s",
            job.id,
            audio_key,
            extra={"job_id": job.id, "user_id": user_id, "status": job.status.value},
        )
        return job.id

    async def get_job(self, job_id: str) -> TranscriptionJob | None:
        """Return the current record for ``job_id``, or None."""
        return await self._store.get(job_id)

    async def process_next_batch(self) -> list[TranscriptionJob]:
        """Claim and process up to ``batch_size`` queued jobs, oldest first.

        Claimed jobs are processed concurrently and independently. A job
        whose claim is lost to a concurrent pass is skipped. Jobs stuck in
        processing past ``processing_lease`` are claimed again, or failed
        if they have no attempts left.

        Returns:
            Final state of every job this pass claimed or expired.

        Raises:
            JobStoreError: If the job store is unreachable. Jobs already
                claimed are processed before the error is raised.
        """
        now = self._clock()
        stale_before = now - timedelta(seconds=self.processing_lease)
        candidates = await self._store.find_claimable(
            self.batch_size, now, stale_before=stale_before
        )

        claimed: list[TranscriptionJob] = []
        finished: list[TranscriptionJob] = []
        first_error: BaseException | None = None
        for candidate in candidates:
            try:
                if self._lease_exhausted(candidate):
                    expired = await self._expire(candidate, now)
                    if expired is not None:
                        finished.append(expired)
                    continue
                job = await self._store.claim(candidate, now)
            except JobStoreError as exc:
                logger.error(
                    "Claiming stopped at job %s: %s",
                    candidate.id,
                    exc,
                    extra={"job_id": candidate.id, "error": str(exc)},
                )
                first_error = exc
                break
            if job is None:
                continue
            logger.info(
                "Claimed job %s (attempt %d)",
                job.id,
                job.attempts,
                extra={"job_id": job.id, "attempt": job.attempts},
            )
            claimed.append(job)

        outcomes = await asyncio.gather(
            *(self._process_job(job) for job in claimed), return_exceptions=True
        )

        for job, outcome in zip(claimed, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(
                    "Could not record outcome for job %s: %s",
                    job.id,
                    outcome,
                    extra={"job_id": job.id, "error": str(outcome)},
                )
                first_error = first_error or outcome
                continue
            finished.append(outcome)

        if first_error is not None:
            raise first_error
        return finished

    def _lease_exhausted(self, job: TranscriptionJob) -> bool:
        return job.status == JobStatus.PROCESSING and not (
            self.retry_policy.should_retry(job.attempts)
        )

    async def _expire(
        self, job: TranscriptionJob, now: datetime
    ) -> TranscriptionJob | None:
        """Fail an abandoned job that has no attempts left."""
        outcome = replace(
            job,
            status=JobStatus.FAILED,
            result=None,
            last_error=f"Processing lease expired after {job.attempts} attempts",
            updated_at=now,
        )
        if not await self._store.save_outcome(outcome):
            return None
        logger.warning(
            "Job %s abandoned in processing; marked failed",
            job.id,
            extra={"job_id": job.id, "attempt": job.attempts, "status": "failed"},
        )
        return outcome

    async def _process_job(self, job: TranscriptionJob) -> TranscriptionJob:
        """Run one claimed job to its next state and persist it."""
        mime_type = get_mime_type(job.audio_key)
        metrics = JobMetrics(
            job_id=job.id,
            user_id=job.user_id,
            status=job.status.value,
            attempts=job.attempts,
            mime_type=mime_type,
        )

        try:
            transcript = await self._transcribe(job, mime_type, metrics)
        except Exception as exc:
            outcome = self._failure_outcome(job, exc)
            logger.warning(
                "Job %s attempt %d failed, now %s: %s",
                job.id,
                job.attempts,
                outcome.status.value,
                exc,
                extra={
                    "job_id": job.id,
                    "attempt": job.attempts,
                    "status": outcome.status.value,
                    "error": str(exc),
                },
            )
        else:
            outcome = replace(
                job,
                status=JobStatus.COMPLETED,
                result=transcript,
                last_error=None,
                updated_at=self._clock(),
            )
            logger.info(
                "Job %s completed",
                job.id,
                extra={
                    "job_id": job.id,
                    "attempt": job.attempts,
                    "status": "completed",
                },
            )

        saved = await self._write_outcome(outcome)
        if not saved:
            logger.warning(
                "Job %s was no longer processing; outcome %s discarded",
                job.id,
                outcome.status.value,
                extra={"job_id": job.id},
            )

        metrics.status = outcome.status.value
        metrics.error_message = outcome.last_error
        log_job_metrics(metrics)
        return outcome

    async def _transcribe(
        self, job: TranscriptionJob, mime_type: str, metrics: JobMetrics
    ) -> str:
        """Fetch the job's audio and transcribe it under the timeout."""
        with StageTimer("fetch") as fetch_timer:
            audio = await self._blob_store.fetch_object(job.audio_key)
        metrics.fetch_duration_seconds = fetch_timer.duration_seconds
        metrics.audio_size_bytes = len(audio)

        with StageTimer("transcribe") as transcribe_timer:
            try:
                transcript = await asyncio.wait_for(
                    self._stt_engine.transcribe(audio, mime_type),
                    timeout=self.transcribe_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise SpeechToTextError(
                    f"Transcription timed out after {self.transcribe_timeout}s",
                    job_id=job.id,
                    provider=self._stt_engine.name,
                ) from exc
        metrics.transcribe_duration_seconds = transcribe_timer.duration_seconds
        metrics.transcript_chars = len(transcript)
        return transcript

    def _failure_outcome(
        self, job: TranscriptionJob, exc: Exception
    ) -> TranscriptionJob:
        """Requeue the job, or fail it once attempts are exhausted."""
        now = self._clock()
        error = str(exc) or type(exc).__name__
        if self.retry_policy.should_retry(job.attempts):
            delay = self.retry_policy.delay_for(job.attempts)
            return replace(
                job,
                status=JobStatus.QUEUED,
                result=None,
                last_error=error,
                updated_at=now,
                available_at=now + timedelta(seconds=delay),
            )
        return replace(
            job,
            status=JobStatus.FAILED,
            result=None,
            last_error=error,
            updated_at=now,
        )
