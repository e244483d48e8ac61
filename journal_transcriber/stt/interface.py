"""Abstract speech-to-text engine interface.

Concrete providers (Whisper, Speechmatics) subclass SpeechToTextEngine.
"""

from abc import ABC, abstractmethod


class SpeechToTextEngine(ABC):
    """Abstract base class for speech-to-text providers.

    Subclasses must implement the transcribe() method.
    """

    name: str = "unknown"

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Transcribe audio bytes and return the plain-text transcript.

        Args:
            audio: Raw bytes of the recording.
            mime_type: MIME type of the recording (e.g. ``audio/webm``).

        Returns:
            Transcript text.

        Raises:
            SpeechToTextError: On provider failure.
        """
