"""FastAPI application factory.

The queue, verifier and blob store are built once per process and
injected here; handlers reach them through ``request.app.state``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from journal_transcriber.api.transcribe import router as transcribe_router
from journal_transcriber.auth.verifier import CredentialVerifier
from journal_transcriber.queue.background import BackgroundRunner, QueueSweeper
from journal_transcriber.queue.transcription_queue import TranscriptionQueue
from journal_transcriber.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type"
    ),
}

UNHANDLED_ERROR_DETAILS = "An unexpected error occurred while handling the request"

# Seconds to let in-flight batch passes finish on shutdown
SHUTDOWN_TIMEOUT_SECONDS = 25


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the optional sweeper; drain background work on shutdown."""
    sweeper: QueueSweeper | None = None
    sweeper_task: asyncio.Task | None = None
    if app.state.sweep_interval > 0:
        sweeper = QueueSweeper(app.state.queue, app.state.sweep_interval)
        sweeper_task = asyncio.create_task(sweeper.run(), name="queue-sweeper")

    yield

    logger.info("Shutting down transcription service")
    if sweeper is not None and sweeper_task is not None:
        sweeper.stop()
        sweeper_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper_task
    await app.state.background.drain(timeout=SHUTDOWN_TIMEOUT_SECONDS)


def create_app(
    queue: TranscriptionQueue,
    verifier: CredentialVerifier,
    blob_store: BlobStore | None = None,
    sweep_interval: float = 0.0,
) -> FastAPI:
    """Build the HTTP application around an existing queue.

    Args:
        queue: The process-wide transcription queue.
        verifier: Resolves bearer credentials to user ids.
        blob_store: Target of recording uploads; uploads answer 503 if None.
        sweep_interval: Seconds between periodic batch passes; 0 disables.
    """
    app = FastAPI(
        title="Journal Transcription Service",
        description="Queued speech-to-text for journal voice entries",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.queue = queue
    app.state.verifier = verifier
    app.state.blob_store = blob_store
    app.state.sweep_interval = sweep_interval
    app.state.background = BackgroundRunner()

    @app.middleware("http")
    async def cors(request: Request, call_next):
        # Preflight never reaches the routes
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled error on %s %s: %s",
                request.method,
                request.url.path,
                exc,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"error": str(exc), "details": UNHANDLED_ERROR_DETAILS},
                headers=CORS_HEADERS,
            )
        response.headers.update(CORS_HEADERS)
        return response

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    app.include_router(transcribe_router, tags=["transcription"])
    return app
