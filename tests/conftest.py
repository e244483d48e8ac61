"""Shared fakes for queue and API tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from journal_transcriber.auth.verifier import CredentialVerifier, extract_bearer_token
from journal_transcriber.jobs.store import InMemoryJobStore
from journal_transcriber.queue.transcription_queue import TranscriptionQueue
from journal_transcriber.storage.blob_store import BlobStore
from journal_transcriber.stt.interface import SpeechToTextEngine
from journal_transcriber.utils.errors import (
    AudioFetchError,
    AuthError,
    SpeechToTextError,
)
from journal_transcriber.utils.retry import RetryPolicy


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeBlobStore(BlobStore):
    """In-memory blob store that records fetches."""

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self.objects = dict(objects or {})
        self.fetched: list[str] = []

    async def fetch_object(self, key: str) -> bytes:
        self.fetched.append(key)
        if key not in self.objects:
            raise AudioFetchError(f"Object '{key}' not found", key=key)
        return self.objects[key]

    async def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        self.objects[key] = data


class FakeSTTEngine(SpeechToTextEngine):
    """Scripted engine: pops one outcome per call, repeating the last one.

    An outcome is either a transcript string or an exception instance.
    """

    name = "fake"

    def __init__(self, *outcomes: str | Exception, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes) or ["hello world"]
        self.delay = delay
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        self.calls.append((audio, mime_type))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeVerifier(CredentialVerifier):
    """Accepts ``Bearer token-<user>`` and returns ``<user>``."""

    async def verify(self, authorization: str | None) -> str:
        token = extract_bearer_token(authorization)
        if not token.startswith("token-"):
            raise AuthError("Invalid token")
        return token.removeprefix("token-")


def stt_failure(message: str = "provider unavailable") -> SpeechToTextError:
    return SpeechToTextError(message, provider="fake")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore(
        {
            "a1.webm": b"webm-bytes",
            "a2.mp3": b"mp3-bytes",
            "a3.wav": b"wav-bytes",
        }
    )


@pytest.fixture
def make_queue(store, blob_store, clock):
    """Factory for a TranscriptionQueue over the shared fakes."""

    def _make(
        stt_engine: SpeechToTextEngine | None = None,
        batch_size: int = 5,
        max_attempts: int = 3,
        base_delay: float = 0.0,
        transcribe_timeout: float = 5.0,
    ) -> TranscriptionQueue:
        return TranscriptionQueue(
            store=store,
            blob_store=blob_store,
            stt_engine=stt_engine or FakeSTTEngine(),
            batch_size=batch_size,
            retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=base_delay),
            transcribe_timeout=transcribe_timeout,
            clock=clock,
            outcome_write_delay=0.0,
        )

    return _make
