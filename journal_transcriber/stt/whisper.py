"""OpenAI Whisper speech-to-text engine.

Posts the recording to the ``/audio/transcriptions`` endpoint as a
multipart upload and returns the ``text`` field of the JSON response.
"""

import logging

import httpx

from journal_transcriber.stt.interface import SpeechToTextEngine
from journal_transcriber.utils.errors import SpeechToTextError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "whisper-1"

_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
}


class WhisperEngine(SpeechToTextEngine):
    """Whisper transcription over the OpenAI HTTP API.

    Args:
        api_key: OpenAI API key.
        model: Transcription model name (default ``whisper-1``).
        timeout: HTTP timeout in seconds for the upload (default 120).
        base_url: API base URL (default production endpoint).
        language: Optional ISO-639-1 hint; None lets Whisper detect it.
        transport: Optional httpx transport (used by tests).
    """

    name = "whisper"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        base_url: str = DEFAULT_BASE_URL,
        language: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._language = language
        self._transport = transport

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        extension = _EXTENSIONS.get(mime_type, "webm")
        files = {"file": (f"audio.{extension}", audio, mime_type)}
        data = {"model": self._model}
        if self._language:
            data["language"] = self._language

        url = f"{self._base_url}/audio/transcriptions"
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    url, headers=headers, files=files, data=data
                )
        except httpx.HTTPError as exc:
            raise SpeechToTextError(
                f"Transcription request failed: {exc}", provider=self.name
            ) from exc

        if response.status_code == 429:
            raise SpeechToTextError("Rate limited by Whisper API", provider=self.name)
        if response.status_code != 200:
            raise SpeechToTextError(
                f"Transcription failed with status {response.status_code}: "
                f"{response.text}",
                provider=self.name,
            )

        text = response.json().get("text")
        if not isinstance(text, str):
            raise SpeechToTextError(
                "No transcription text in response", provider=self.name
            )

        logger.info(
            "Whisper transcribed %d bytes into %d chars", len(audio), len(text)
        )
        return text
