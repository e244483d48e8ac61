"""Service entry point.

Builds the transcription queue and its collaborators from environment
variables, wraps them in the FastAPI app and serves it with uvicorn.
"""

from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI
from supabase import Client

from journal_transcriber.api.app import create_app
from journal_transcriber.auth.verifier import SupabaseCredentialVerifier
from journal_transcriber.jobs.store import InMemoryJobStore, JobStore
from journal_transcriber.observability.logger import setup_logging
from journal_transcriber.queue.transcription_queue import TranscriptionQueue
from journal_transcriber.storage.blob_store import BlobStore, get_blob_store
from journal_transcriber.storage.supabase_client import create_service_client
from journal_transcriber.storage.supabase_jobs import SupabaseJobStore
from journal_transcriber.stt.registry import get_stt_engine
from journal_transcriber.utils.errors import StorageError
from journal_transcriber.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

_STT_KEY_VARS = {
    "whisper": "OPENAI_API_KEY",
    "speechmatics": "SPEECHMATICS_API_KEY",
}


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def _uses_supabase() -> bool:
    return "supabase" in (
        os.environ.get("JOB_STORE", "supabase"),
        os.environ.get("BLOB_STORE", "supabase"),
    )


def build_job_store(client: Client | None = None) -> JobStore:
    """Select the job store named by JOB_STORE (``supabase`` or ``memory``).

    ``client`` is a shared service-role client; one is created if omitted.
    """
    kind = os.environ.get("JOB_STORE", "supabase")
    if kind == "memory":
        logger.warning("Using in-memory job store; jobs are lost on restart")
        return InMemoryJobStore()
    if kind == "supabase":
        return SupabaseJobStore(client or create_service_client())
    raise StorageError(
        f"Unknown job store: '{kind}'. Available: memory, supabase",
        operation="init",
    )


def build_blob_store(client: Client | None = None) -> BlobStore:
    """Select the blob store named by BLOB_STORE (``supabase`` or ``s3``)."""
    provider = os.environ.get("BLOB_STORE", "supabase")
    if provider == "supabase" and client is None:
        client = create_service_client()
    return get_blob_store(provider, supabase_client=client)


def build_queue(
    blob_store: BlobStore, store: JobStore | None = None
) -> TranscriptionQueue:
    """Build the process-wide queue from environment configuration."""
    lease = os.environ.get("QUEUE_PROCESSING_LEASE_SECONDS")
    provider = os.environ.get("STT_PROVIDER", "whisper")
    api_key = os.environ.get(_STT_KEY_VARS.get(provider, ""), "")
    return TranscriptionQueue(
        store=store or build_job_store(),
        blob_store=blob_store,
        stt_engine=get_stt_engine(provider, api_key=api_key),
        batch_size=_env_int("QUEUE_BATCH_SIZE", 5),
        retry_policy=RetryPolicy(
            max_attempts=_env_int("QUEUE_MAX_ATTEMPTS", 3),
            base_delay=_env_float("QUEUE_RETRY_BASE_DELAY", 0.0),
        ),
        transcribe_timeout=_env_float("STT_TIMEOUT_SECONDS", 60.0),
        processing_lease=float(lease) if lease else None,
    )


def build_app() -> FastAPI:
    """Wire configuration into a ready-to-serve application."""
    client = create_service_client() if _uses_supabase() else None
    blob_store = build_blob_store(client)
    queue = build_queue(blob_store, build_job_store(client))
    return create_app(
        queue=queue,
        verifier=SupabaseCredentialVerifier(),
        blob_store=blob_store,
        sweep_interval=_env_float("QUEUE_SWEEP_INTERVAL_SECONDS", 0.0),
    )


def main() -> None:
    """Configure logging and serve the transcription API."""
    setup_logging()
    logger.info("Transcription service starting")

    app = build_app()
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=_env_int("PORT", 8000),
        log_config=None,
    )


if __name__ == "__main__":
    main()
