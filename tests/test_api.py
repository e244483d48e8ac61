"""Tests for the HTTP surface: CORS, auth, job submission and uploads."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from journal_transcriber.api.app import UNHANDLED_ERROR_DETAILS, create_app
from journal_transcriber.api.transcribe import (
    INTERNAL_ERROR_DETAILS,
    MISSING_FIELDS_MESSAGE,
    QUEUED_MESSAGE,
    UNAUTHORIZED_MESSAGE,
)
from journal_transcriber.utils.errors import JobStoreError, StorageError
from tests.conftest import FakeVerifier

AUTH = {"Authorization": "Bearer token-user-1"}


@pytest.fixture
def app(make_queue, blob_store):
    return create_app(queue=make_queue(), verifier=FakeVerifier(), blob_store=blob_store)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _assert_cors(response: httpx.Response) -> None:
    assert response.headers["access-control-allow-origin"] == "*"
    assert "authorization" in response.headers["access-control-allow-headers"]


class TestCors:
    """Tests for preflight and CORS headers."""

    async def test_preflight_returns_cors_headers(self, client) -> None:
        response = await client.options("/transcribe-audio")

        assert response.status_code == 200
        assert response.content == b""
        _assert_cors(response)

    async def test_health_carries_cors_headers(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        _assert_cors(response)


class TestTranscribeAudio:
    """Tests for POST /transcribe-audio."""

    @pytest.mark.parametrize(
        "headers", [{}, {"Authorization": "Bearer forged"}, {"Authorization": "x"}]
    )
    async def test_unauthorized(self, client, headers) -> None:
        response = await client.post(
            "/transcribe-audio", json={"audioUrl": "a1.webm"}, headers=headers
        )

        assert response.status_code == 401
        assert response.json() == {"error": UNAUTHORIZED_MESSAGE}
        _assert_cors(response)

    @pytest.mark.parametrize(
        "content", [b"", b"{not json", b"[]", b'{"audioUrl": ""}', b'{"other": 1}']
    )
    async def test_missing_audio_url(self, client, content) -> None:
        response = await client.post(
            "/transcribe-audio",
            content=content,
            headers={**AUTH, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": MISSING_FIELDS_MESSAGE}
        _assert_cors(response)

    async def test_accepted_and_processed_in_background(self, app, client, store) -> None:
        response = await client.post(
            "/transcribe-audio", json={"audioUrl": "a1.webm"}, headers=AUTH
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "queued"
        assert body["message"] == QUEUED_MESSAGE
        _assert_cors(response)

        await app.state.background.drain(timeout=5)

        job = await store.get(body["jobId"])
        assert job.user_id == "user-1"
        assert job.audio_key == "a1.webm"
        assert job.status.value == "completed"
        assert job.result == "hello world"

    async def test_store_failure_returns_500(self, blob_store) -> None:
        queue = MagicMock()
        queue.enqueue_job = AsyncMock(
            side_effect=JobStoreError("Job store insert failed", operation="insert")
        )
        app = create_app(queue=queue, verifier=FakeVerifier(), blob_store=blob_store)
        transport = httpx.ASGITransport(app=app)

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/transcribe-audio", json={"audioUrl": "a1.webm"}, headers=AUTH
            )

        assert response.status_code == 500
        assert response.json() == {
            "error": "Job store insert failed",
            "details": INTERNAL_ERROR_DETAILS,
        }
        _assert_cors(response)
        assert app.state.background.pending == 0


class TestGetTranscription:
    """Tests for GET /transcribe-audio/{job_id}."""

    async def test_owner_sees_completed_transcript(self, app, client) -> None:
        created = await client.post(
            "/transcribe-audio", json={"audioUrl": "a2.mp3"}, headers=AUTH
        )
        job_id = created.json()["jobId"]
        await app.state.background.drain(timeout=5)

        response = await client.get(f"/transcribe-audio/{job_id}", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["jobId"] == job_id
        assert body["status"] == "completed"
        assert body["attempts"] == 1
        assert body["result"] == "hello world"

    async def test_other_user_gets_404(self, app, client) -> None:
        created = await client.post(
            "/transcribe-audio", json={"audioUrl": "a1.webm"}, headers=AUTH
        )
        job_id = created.json()["jobId"]
        await app.state.background.drain(timeout=5)

        response = await client.get(
            f"/transcribe-audio/{job_id}",
            headers={"Authorization": "Bearer token-user-2"},
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Job not found"}

    async def test_unknown_job_gets_404(self, client) -> None:
        response = await client.get("/transcribe-audio/nope", headers=AUTH)
        assert response.status_code == 404

    async def test_requires_auth(self, client) -> None:
        response = await client.get("/transcribe-audio/nope")
        assert response.status_code == 401


class TestUploadAudio:
    """Tests for POST /audio."""

    async def test_stores_recording_and_returns_key(self, client, blob_store) -> None:
        response = await client.post(
            "/audio",
            files={"file": ("my entry.MP3", b"mp3-bytes", "audio/mpeg")},
            headers=AUTH,
        )

        assert response.status_code == 201
        key = response.json()["audioUrl"]
        assert key.endswith(".mp3")
        assert blob_store.objects[key] == b"mp3-bytes"
        _assert_cors(response)

    async def test_defaults_to_webm_extension(self, client, blob_store) -> None:
        response = await client.post(
            "/audio", files={"file": ("recording", b"bytes", "audio/webm")}, headers=AUTH
        )

        assert response.json()["audioUrl"].endswith(".webm")

    async def test_missing_file(self, client) -> None:
        response = await client.post("/audio", data={"note": "x"}, headers=AUTH)

        assert response.status_code == 400
        assert response.json() == {"error": MISSING_FIELDS_MESSAGE}

    async def test_too_large(self, client, monkeypatch) -> None:
        monkeypatch.setattr("journal_transcriber.api.transcribe._MAX_AUDIO_BYTES", 4)

        response = await client.post(
            "/audio", files={"file": ("a.wav", b"12345", "audio/wav")}, headers=AUTH
        )

        assert response.status_code == 413

    async def test_requires_auth(self, client) -> None:
        response = await client.post(
            "/audio", files={"file": ("a.wav", b"123", "audio/wav")}
        )
        assert response.status_code == 401

    async def test_unconfigured_storage(self, make_queue) -> None:
        app = create_app(queue=make_queue(), verifier=FakeVerifier())
        transport = httpx.ASGITransport(app=app)

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/audio", files={"file": ("a.wav", b"123", "audio/wav")}, headers=AUTH
            )

        assert response.status_code == 503

    async def test_storage_error_returns_json_500(self, make_queue) -> None:
        blob_store = MagicMock()
        blob_store.put_object = AsyncMock(
            side_effect=StorageError("Could not connect", operation="put_object")
        )
        app = create_app(
            queue=make_queue(), verifier=FakeVerifier(), blob_store=blob_store
        )
        transport = httpx.ASGITransport(app=app)

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/audio", files={"file": ("a.wav", b"123", "audio/wav")}, headers=AUTH
            )

        assert response.status_code == 500
        assert response.json()["error"] == "Could not connect"
        _assert_cors(response)

    async def test_unexpected_error_returns_json_500(self, make_queue) -> None:
        blob_store = MagicMock()
        blob_store.put_object = AsyncMock(side_effect=RuntimeError("socket closed"))
        app = create_app(
            queue=make_queue(), verifier=FakeVerifier(), blob_store=blob_store
        )
        transport = httpx.ASGITransport(app=app)

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/audio", files={"file": ("a.wav", b"123", "audio/wav")}, headers=AUTH
            )

        assert response.status_code == 500
        assert response.json() == {
            "error": "socket closed",
            "details": UNHANDLED_ERROR_DETAILS,
        }
        _assert_cors(response)
