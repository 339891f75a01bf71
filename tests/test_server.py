"""
HTTP Boundary Tests

Covers:
1. Generation endpoints (status codes, envelopes)
2. Error mapping to status codes and bodies
3. Rate limiting headers and 429
4. Body size guard, health and root endpoints

Run with:
    python -m pytest tests/test_server.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from core.errors import (
    ArtifactNotReady,
    JobFailed,
    JobNotReady,
    NoArtifactsProduced,
    ProviderError,
    ProviderNotConfigured,
)
from core.rate_limiter import RateLimiter
from services.api.server import create_app
from services.generation import GenerationDispatcher
from services.video_generation import VideoArtifact, VideoJob, VideoJobStatus
from services.video_generation.client import ArtifactVariant


def make_job(status=VideoJobStatus.QUEUED, progress=0) -> VideoJob:
    return VideoJob(id="video_123", status=status, progress=progress, model="sora-2", size="1280x720", seconds=8)


@pytest.fixture
def image_client():
    client = MagicMock()
    client.generate_image = AsyncMock(return_value=["data:image/png;base64,AAAA"])
    client.is_configured = MagicMock(return_value=True)
    client.close = AsyncMock()
    return client


@pytest.fixture
def video_client():
    client = MagicMock()
    client.submit = AsyncMock(return_value=make_job())
    client.poll = AsyncMock(return_value=make_job(VideoJobStatus.PROCESSING, 35))
    client.retrieve_artifact = AsyncMock(
        return_value=VideoArtifact(job_id="video_123", variant=ArtifactVariant.VIDEO, content=b"mp4-bytes")
    )
    client.is_configured = MagicMock(return_value=True)
    client.close = AsyncMock()
    return client


def build_client(config, image_client, video_client, max_requests=100) -> TestClient:
    dispatcher = GenerationDispatcher(
        image_client=image_client,
        video_client=video_client,
        poller=MagicMock(),
        config=config,
    )
    limiter = RateLimiter(window_seconds=60, max_requests=max_requests)
    return TestClient(create_app(config=config, dispatcher=dispatcher, rate_limiter=limiter))


@pytest.fixture
def client(config, image_client, video_client):
    return build_client(config, image_client, video_client)


class TestGenerateImage:
    """POST /generate-image."""

    def test_text_to_image(self, client, image_client):
        response = client.post("/generate-image", json={"prompt": "a lighthouse", "aspectRatio": "16:9"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["type"] == "text-to-image"
        assert data["images"] == ["data:image/png;base64,AAAA"]
        assert data["aspectRatio"] == "16:9"
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"

    def test_missing_prompt_is_400(self, client, image_client):
        response = client.post("/generate-image", json={"aspectRatio": "1:1"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "Missing or invalid prompt. Please provide a valid prompt string.",
            "code": "missing_prompt",
        }
        image_client.generate_image.assert_not_called()

    def test_invalid_image_is_400(self, client):
        response = client.post("/generate-image", json={"prompt": "fox", "image": "%%%"})

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_image_format"

    def test_non_object_body_is_400(self, client):
        response = client.post("/generate-image", json=["fox"])

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_request"

    def test_no_artifacts_is_502(self, client, image_client):
        image_client.generate_image.side_effect = NoArtifactsProduced("vertex-ai", "refused")

        response = client.post("/generate-image", json={"prompt": "fox"})

        assert response.status_code == 502
        assert response.json()["code"] == "no_artifacts"

    def test_not_configured_is_500(self, client, image_client):
        image_client.generate_image.side_effect = ProviderNotConfigured("vertex-ai", "no project")

        response = client.post("/generate-image", json={"prompt": "fox"})

        assert response.status_code == 500
        assert response.json()["error"] == "Server configuration error. Please contact support."
        assert "details" not in response.json()

    def test_details_only_in_development(self, config_factory, image_client, video_client):
        client = build_client(config_factory(environment="development"), image_client, video_client)
        image_client.generate_image.side_effect = ProviderError("vertex-ai", 400, "bad request body")

        response = client.post("/generate-image", json={"prompt": "fox"})

        assert response.status_code == 502
        assert "bad request body" in response.json()["details"]

    def test_unexpected_error_is_500(self, config, image_client, video_client):
        dispatcher = GenerationDispatcher(image_client, video_client, MagicMock(), config=config)
        app = create_app(config=config, dispatcher=dispatcher, rate_limiter=RateLimiter())
        image_client.generate_image.side_effect = RuntimeError("bug")

        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/generate-image", json={"prompt": "fox"})

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error. Please try again later."


class TestGenerateVideo:
    """POST /generate-video."""

    def test_returns_202_with_job(self, client, video_client):
        response = client.post("/generate-video", json={"prompt": "waves", "seconds": 4})

        assert response.status_code == 202
        data = response.json()
        assert data["generationType"] == "text-to-video"
        assert data["jobId"] == "video_123"
        assert data["status"] == "queued"
        assert data["seconds"] == 4
        assert data["model"] == "sora-2"

    def test_seconds_out_of_range_never_submits(self, client, video_client):
        response = client.post("/generate-video", json={"prompt": "waves", "seconds": 120})

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_duration"
        video_client.submit.assert_not_called()

    def test_user_id_header_reaches_log(self, config, image_client, video_client):
        request_log = MagicMock()
        dispatcher = GenerationDispatcher(
            image_client, video_client, MagicMock(), request_log=request_log, config=config
        )
        client = TestClient(create_app(config=config, dispatcher=dispatcher, rate_limiter=RateLimiter()))

        client.post("/generate-video", json={"prompt": "waves"}, headers={"x-user-id": "user-42"})

        entry = request_log.record.call_args.args[0]
        assert entry.client_id == "user-42"


class TestVideoJobs:
    """GET /videos/{job_id} and /content."""

    def test_status(self, client):
        response = client.get("/videos/video_123")

        assert response.status_code == 200
        assert response.json()["status"] == "processing"
        assert response.json()["progress"] == 35

    def test_unknown_job_is_404(self, client, video_client):
        video_client.poll.side_effect = JobNotReady("sora", 404, "not found")

        response = client.get("/videos/video_missing")

        assert response.status_code == 404

    def test_content(self, client, video_client):
        video_client.poll.return_value = make_job(VideoJobStatus.COMPLETED, 100)

        response = client.get("/videos/video_123/content")

        assert response.status_code == 200
        assert response.content == b"mp4-bytes"
        assert response.headers["content-type"] == "video/mp4"

    def test_content_not_ready_is_409(self, client, video_client):
        video_client.retrieve_artifact.side_effect = ArtifactNotReady("video_123", "processing")

        response = client.get("/videos/video_123/content")

        assert response.status_code == 409
        assert response.json()["error"] == "Video is not ready yet."

    def test_bad_variant_is_400(self, client):
        response = client.get("/videos/video_123/content", params={"variant": "gif"})

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_variant"

    def test_failed_job_is_502(self, client, video_client):
        video_client.poll.side_effect = JobFailed("video_123", "policy")

        response = client.get("/videos/video_123")

        assert response.status_code == 502
        assert response.json()["code"] == "job_failed"


class TestRateLimiting:
    """Per-address admission at the boundary."""

    def test_429_after_cap(self, config, image_client, video_client):
        client = build_client(config, image_client, video_client, max_requests=2)

        for _ in range(2):
            assert client.post("/generate-image", json={"prompt": "fox"}).status_code == 200
        response = client.post("/generate-image", json={"prompt": "fox"})

        assert response.status_code == 429
        assert response.json()["error"] == "Too many requests. Please try again later."
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) >= 1
        assert image_client.generate_image.await_count == 2

    def test_injected_limiter_is_used(self, config, image_client, video_client):
        dispatcher = GenerationDispatcher(image_client, video_client, MagicMock(), config=config)
        limiter = RateLimiter(window_seconds=60, max_requests=2)
        client = TestClient(create_app(config=config, dispatcher=dispatcher, rate_limiter=limiter))

        response = client.post("/generate-image", json={"prompt": "fox"})

        assert response.headers["X-RateLimit-Limit"] == "2"
        assert len(limiter) == 1

    def test_limit_shared_across_generation_endpoints(self, config, image_client, video_client):
        client = build_client(config, image_client, video_client, max_requests=1)

        assert client.post("/generate-image", json={"prompt": "fox"}).status_code == 200
        assert client.post("/generate-video", json={"prompt": "waves"}).status_code == 429

    def test_status_endpoints_not_limited(self, config, image_client, video_client):
        client = build_client(config, image_client, video_client, max_requests=1)

        for _ in range(3):
            assert client.get("/videos/video_123").status_code == 200


class TestMisc:
    """Size guard, health, root."""

    def test_oversized_body_is_413(self, config_factory, image_client, video_client):
        client = build_client(config_factory(max_body_bytes=1024), image_client, video_client)

        response = client.post("/generate-image", json={"prompt": "x" * 4096})

        assert response.status_code == 413
        image_client.generate_image.assert_not_called()

    def test_chunked_oversized_body_is_413(self, config_factory, image_client, video_client):
        client = build_client(config_factory(max_body_bytes=1024), image_client, video_client)
        payload = b'{"prompt": "' + b"x" * 8192 + b'"}'

        def chunks():
            for start in range(0, len(payload), 512):
                yield payload[start:start + 512]

        response = client.post(
            "/generate-image",
            content=chunks(),
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json()["code"] == "payload_too_large"
        image_client.generate_image.assert_not_called()

    def test_chunked_body_under_limit_is_replayed(self, config_factory, image_client, video_client):
        client = build_client(config_factory(max_body_bytes=1024), image_client, video_client)

        response = client.post(
            "/generate-image",
            content=iter([b'{"prompt": ', b'"fox"}']),
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert image_client.generate_image.await_args.kwargs["prompt"] == "fox"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["imageGenerationAvailable"] is True
        assert data["videoGenerationAvailable"] is True
        assert "rateLimiter" in data

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "POST /generate-video" in response.json()["endpoints"]

    def test_cors_headers(self, client):
        response = client.get("/health", headers={"Origin": "https://example.com"})

        assert response.headers["access-control-allow-origin"] == "*"
