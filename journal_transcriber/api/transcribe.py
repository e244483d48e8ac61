"""Transcription endpoints.

POST /transcribe-audio queues a job and answers 202 immediately; the
batch pass it triggers runs detached from the request. The status read
and the recording upload are the other two calls the journal client
makes around it.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Any

from fastapi import APIRouter, File, Header, Request, UploadFile
from fastapi.responses import JSONResponse

from journal_transcriber.storage.mime import get_mime_type, sanitize_file_name
from journal_transcriber.utils.errors import (
    AuthError,
    InvalidRequestError,
    StorageError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

UNAUTHORIZED_MESSAGE = "Unauthorized - No valid session found"
MISSING_FIELDS_MESSAGE = "Missing required fields"
QUEUED_MESSAGE = "Transcription job has been queued and will be processed shortly"
INTERNAL_ERROR_DETAILS = "An error occurred while processing the transcription request"

# Whisper rejects uploads above 25 MB
_MAX_AUDIO_BYTES = 25 * 1024 * 1024


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def _read_audio_url(request: Request) -> str | None:
    """Return the non-empty ``audioUrl`` of a JSON body, or None."""
    body = await request.body()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    audio_url = payload.get("audioUrl")
    if not isinstance(audio_url, str) or not audio_url.strip():
        return None
    return audio_url.strip()


@router.post("/transcribe-audio")
async def transcribe_audio(
    request: Request, authorization: str | None = Header(None)
) -> JSONResponse:
    """Queue a transcription of an uploaded recording.

    Returns:
        202 {status, jobId, message}; 401, 400 or 500 with an error body.
    """
    state = request.app.state
    logger.info("Received transcribe-audio request")

    try:
        user_id = await state.verifier.verify(authorization)
    except AuthError as exc:
        logger.warning("Authentication failed: %s", exc)
        return _error(401, UNAUTHORIZED_MESSAGE)

    try:
        audio_url = await _read_audio_url(request)
        if audio_url is None:
            logger.warning("Missing audioUrl in request", extra={"user_id": user_id})
            return _error(400, MISSING_FIELDS_MESSAGE)

        job_id = await state.queue.enqueue_job(audio_url, user_id)
        state.background.spawn(
            state.queue.process_next_batch(), name=f"batch-after-{job_id}"
        )
    except InvalidRequestError as exc:
        logger.warning("Rejected transcription request: %s", exc)
        return _error(400, MISSING_FIELDS_MESSAGE)
    except Exception as exc:
        logger.error("Error in transcribe-audio: %s", exc, exc_info=True)
        return _error(500, str(exc), details=INTERNAL_ERROR_DETAILS)

    return JSONResponse(
        status_code=202,
        content={"status": "queued", "jobId": job_id, "message": QUEUED_MESSAGE},
    )


@router.get("/transcribe-audio/{job_id}")
async def get_transcription(
    job_id: str, request: Request, authorization: str | None = Header(None)
) -> JSONResponse:
    """Return a job's status and, once completed, its transcript.

    Jobs owned by another user are reported as not found.
    """
    state = request.app.state
    try:
        user_id = await state.verifier.verify(authorization)
    except AuthError:
        return _error(401, UNAUTHORIZED_MESSAGE)

    try:
        job = await state.queue.get_job(job_id)
    except Exception as exc:
        logger.error("Error reading job %s: %s", job_id, exc, exc_info=True)
        return _error(500, str(exc), details=INTERNAL_ERROR_DETAILS)

    if job is None or job.user_id != user_id:
        return _error(404, "Job not found")
    return JSONResponse(status_code=200, content=job.to_response())


@router.post("/audio")
async def upload_audio(
    request: Request,
    file: UploadFile | None = File(None),
    authorization: str | None = Header(None),
) -> JSONResponse:
    """Store a recording and return the key to pass as ``audioUrl``.

    Returns:
        201 {audioUrl}; 401, 400, 413, 503 or 500 with an error body.
    """
    state = request.app.state
    try:
        user_id = await state.verifier.verify(authorization)
    except AuthError:
        return _error(401, UNAUTHORIZED_MESSAGE)

    if state.blob_store is None:
        return _error(503, "Audio storage not configured")

    if file is None:
        return _error(400, MISSING_FIELDS_MESSAGE)
    data = await file.read()
    if not data:
        return _error(400, MISSING_FIELDS_MESSAGE)
    if len(data) > _MAX_AUDIO_BYTES:
        return _error(413, "Audio file too large")

    ext = os.path.splitext(sanitize_file_name(file.filename or ""))[1].lower()
    key = f"{uuid.uuid4()}{ext or '.webm'}"

    try:
        await state.blob_store.put_object(key, data, get_mime_type(key))
    except StorageError as exc:
        logger.error("Audio upload failed: %s", exc, extra={"user_id": user_id})
        return _error(
            500, str(exc), details="An error occurred while uploading audio"
        )

    logger.info(
        "Stored %d bytes of audio as %s", len(data), key, extra={"user_id": user_id}
    )
    return JSONResponse(status_code=201, content={"audioUrl": key})
