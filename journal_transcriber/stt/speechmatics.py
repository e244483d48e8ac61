"""Speechmatics speech-to-text engine.

Uses the Speechmatics Batch API v2: submit the recording, poll the job
until it is done, then fetch the plain-text transcript.
"""

import asyncio
import json
import logging
import time

import httpx

from journal_transcriber.stt.interface import SpeechToTextEngine
from journal_transcriber.utils.errors import SpeechToTextError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://asr.api.speechmatics.com/v2"
POLL_INTERVAL_SECONDS = 5.0
TRANSIENT_STATUS_CODES = {429, 503}


class SpeechmaticsEngine(SpeechToTextEngine):
    """Speechmatics Batch API engine.

    Args:
        api_key: Speechmatics API key for authentication.
        timeout: Maximum seconds to wait for job completion (default 600).
        base_url: Speechmatics API base URL (default production endpoint).
        language: Transcription language (default ``en``).
        transport: Optional httpx transport (used by tests).
    """

    name = "speechmatics"

    def __init__(
        self,
        api_key: str,
        timeout: int = 600,
        base_url: str = DEFAULT_BASE_URL,
        language: str = "en",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._language = language
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        async with httpx.AsyncClient(transport=self._transport) as client:
            job_id = await self._submit_job(client, audio, mime_type)
            await self._poll_until_complete(client, job_id)
            return await self._fetch_transcript(client, job_id)

    async def _submit_job(
        self, client: httpx.AsyncClient, audio: bytes, mime_type: str
    ) -> str:
        """Submit a recording for transcription.

        Returns:
            The Speechmatics job ID.

        Raises:
            SpeechToTextError: If submission fails.
        """
        config = {
            "type": "transcription",
            "transcription_config": {"language": self._language},
        }
        files = {"data_file": ("audio", audio, mime_type)}
        data = {"config": json.dumps(config)}

        try:
            response = await client.post(
                f"{self._base_url}/jobs/",
                headers=self._headers(),
                files=files,
                data=data,
            )
        except httpx.HTTPError as exc:
            raise SpeechToTextError(
                f"Failed to submit job: {exc}", provider=self.name
            ) from exc

        if response.status_code == 429:
            raise SpeechToTextError(
                "Rate limited during job submission", provider=self.name
            )
        if response.status_code == 503:
            raise SpeechToTextError(
                "Service unavailable during job submission", provider=self.name
            )
        if response.status_code != 201:
            raise SpeechToTextError(
                f"Job submission failed with status {response.status_code}: "
                f"{response.text}",
                provider=self.name,
            )

        job_id = response.json().get("id")
        if not job_id:
            raise SpeechToTextError(
                "No job ID in submission response", provider=self.name
            )

        logger.info("Submitted Speechmatics job %s", job_id)
        return job_id

    async def _poll_until_complete(
        self, client: httpx.AsyncClient, job_id: str
    ) -> None:
        """Poll job status until done, rejected, or timeout.

        Raises:
            SpeechToTextError: If the job is rejected, deleted, or times out.
        """
        url = f"{self._base_url}/jobs/{job_id}"
        deadline = time.monotonic() + self._timeout

        while time.monotonic() < deadline:
            try:
                response = await client.get(url, headers=self._headers())
            except httpx.HTTPError as exc:
                raise SpeechToTextError(
                    f"Failed to poll job status: {exc}", provider=self.name
                ) from exc

            if response.status_code in TRANSIENT_STATUS_CODES:
                await asyncio.sleep(POLL_INTERVAL_SECONDS)
                continue

            if response.status_code != 200:
                raise SpeechToTextError(
                    f"Poll failed with status {response.status_code}: "
                    f"{response.text}",
                    provider=self.name,
                )

            status = response.json().get("job", {}).get("status", "")

            if status == "done":
                logger.info("Speechmatics job %s completed", job_id)
                return

            if status in ("rejected", "deleted"):
                raise SpeechToTextError(
                    f"Job {job_id} was {status}", provider=self.name
                )

            await asyncio.sleep(POLL_INTERVAL_SECONDS)

        raise SpeechToTextError(
            f"Job {job_id} timed out after {self._timeout}s", provider=self.name
        )

    async def _fetch_transcript(self, client: httpx.AsyncClient, job_id: str) -> str:
        """Fetch the completed transcript as plain text.

        Raises:
            SpeechToTextError: If fetching the transcript fails.
        """
        url = f"{self._base_url}/jobs/{job_id}/transcript"
        try:
            response = await client.get(
                url, headers=self._headers(), params={"format": "txt"}
            )
        except httpx.HTTPError as exc:
            raise SpeechToTextError(
                f"Failed to fetch transcript: {exc}", provider=self.name
            ) from exc

        if response.status_code != 200:
            raise SpeechToTextError(
                f"Transcript fetch failed with status "
                f"{response.status_code}: {response.text}",
                provider=self.name,
            )

        return response.text.strip()
