"""
Sora Video Generation Client

Asynchronous video path of the relay:
- submit: create a video job (text-to-video or image-to-video)
- poll: fetch one status snapshot of a job
- retrieve_artifact: download the video, thumbnail or spritesheet of a completed job

Jobs are owned by the provider. Nothing here stores them; every call returns
a fresh VideoJob snapshot.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

import httpx

from core.config import get_config
from core.errors import (
    ArtifactNotReady,
    InvalidVariant,
    JobFailed,
    JobNotReady,
    ProviderError,
    ProviderNotConfigured,
)
from services.generation.models import ReferenceImage, VideoModel, VideoSize

logger = logging.getLogger(__name__)

PROVIDER = "sora"

# Status fetch failures that mean "the job is not visible yet", not "broken"
NOT_READY_STATUS_CODES = frozenset({404, 409, 425})


class VideoJobStatus(str, Enum):
    """Status of a video generation job."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoJobStatus.COMPLETED, VideoJobStatus.FAILED)


PROVIDER_STATUS_MAP = {
    "queued": VideoJobStatus.QUEUED,
    "pending": VideoJobStatus.QUEUED,
    "in_progress": VideoJobStatus.PROCESSING,
    "processing": VideoJobStatus.PROCESSING,
    "completed": VideoJobStatus.COMPLETED,
    "succeeded": VideoJobStatus.COMPLETED,
    "failed": VideoJobStatus.FAILED,
    "cancelled": VideoJobStatus.FAILED,
}


class ArtifactVariant(str, Enum):
    """Downloadable representations of a completed job."""
    VIDEO = "video"
    THUMBNAIL = "thumbnail"
    SPRITESHEET = "spritesheet"

    @property
    def content_type(self) -> str:
        return VARIANT_CONTENT_TYPES[self]


# Fixed per variant, whatever the provider reports
VARIANT_CONTENT_TYPES = {
    ArtifactVariant.VIDEO: "video/mp4",
    ArtifactVariant.THUMBNAIL: "image/webp",
    ArtifactVariant.SPRITESHEET: "image/jpeg",
}

MIME_FILENAMES = {
    "image/jpeg": "reference.jpg",
    "image/jpg": "reference.jpg",
    "image/png": "reference.png",
    "image/webp": "reference.webp",
}


@dataclass(frozen=True)
class VideoJob:
    """Normalized snapshot of a provider video job."""
    id: str
    status: VideoJobStatus
    progress: int = 0
    model: Optional[str] = None
    size: Optional[str] = None
    seconds: Optional[int] = None
    created_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_provider(cls, data: dict) -> "VideoJob":
        """Build a snapshot from a provider job object."""
        job_id = data.get("id")
        if not job_id:
            raise ProviderError(PROVIDER, None, f"No job id in response: {str(data)[:200]}")

        raw_status = str(data.get("status") or "").lower()
        status = PROVIDER_STATUS_MAP.get(raw_status, VideoJobStatus.PROCESSING)

        progress = data.get("progress")
        try:
            progress = int(progress) if progress is not None else None
        except (TypeError, ValueError):
            progress = None
        if progress is None:
            progress = 100 if status == VideoJobStatus.COMPLETED else 0
        progress = max(0, min(100, progress))

        seconds = data.get("seconds")
        try:
            seconds = int(seconds) if seconds is not None else None
        except (TypeError, ValueError):
            seconds = None

        created_at = data.get("created_at")
        if isinstance(created_at, (int, float)):
            created_at = datetime.fromtimestamp(created_at, tz=timezone.utc)
        else:
            created_at = None

        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("code")
        elif error is not None:
            error = str(error)

        return cls(
            id=str(job_id),
            status=status,
            progress=progress,
            model=data.get("model"),
            size=data.get("size"),
            seconds=seconds,
            created_at=created_at,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "model": self.model,
            "size": self.size,
            "seconds": self.seconds,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class VideoArtifact:
    """Binary payload of a completed job."""
    job_id: str
    variant: ArtifactVariant
    content: bytes = field(repr=False)

    @property
    def content_type(self) -> str:
        return self.variant.content_type


# ============================================================
# Submission strategies
# ============================================================

class SubmissionStrategy(ABC):
    """How a job creation request is put on the wire."""

    name: str = "base"

    @abstractmethod
    async def send(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        fields: dict[str, str],
        reference_image: Optional[ReferenceImage],
    ) -> httpx.Response:
        pass


class StructuredSubmission(SubmissionStrategy):
    """Submit without attachment: plain JSON body."""

    name = "structured"

    async def send(self, client, url, headers, fields, reference_image):
        return await client.post(
            url,
            json=fields,
            headers={**headers, "Content-Type": "application/json"},
        )


class AttachmentSubmission(SubmissionStrategy):
    """Submit with attachment: multipart form carrying the reference image bytes."""

    name = "attachment"

    async def send(self, client, url, headers, fields, reference_image):
        if reference_image is None:
            raise ValueError("AttachmentSubmission requires a reference image")

        filename = MIME_FILENAMES.get(reference_image.mime_type, "reference.png")
        files = {
            "input_reference": (filename, reference_image.data, reference_image.mime_type),
        }
        # httpx sets the multipart boundary header itself
        return await client.post(url, data=fields, files=files, headers=headers)


def select_submission_strategy(reference_image: Optional[ReferenceImage]) -> SubmissionStrategy:
    """Pick the submission strategy for a request."""
    if reference_image is not None:
        return AttachmentSubmission()
    return StructuredSubmission()


# ============================================================
# Client
# ============================================================

def _enum_value(value: Union[Enum, str]) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class VideoGenerationClient:
    """
    Client for the Sora video API.

    Usage:
        client = VideoGenerationClient()

        job = await client.submit(
            prompt="A golden retriever running through a field",
            model="sora-2",
            size="1280x720",
            seconds=8,
        )
        job = await client.poll(job.id)
        if job.status == VideoJobStatus.COMPLETED:
            artifact = await client.retrieve_artifact(job, "video")
    """

    def __init__(
        self,
        config: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Optional config override
            http_client: Optional preconfigured httpx client (tests inject a mock transport)
        """
        self.config = config or get_config()
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.api.video_timeout_seconds)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def is_configured(self) -> bool:
        return bool(self.config.api.openai_api_key)

    def _headers(self) -> dict[str, str]:
        if not self.config.api.openai_api_key:
            raise ProviderNotConfigured(PROVIDER, "OPENAI_API_KEY is not set in environment variables")
        return {"Authorization": f"Bearer {self.config.api.openai_api_key}"}

    def _url(self, path: str) -> str:
        return f"{self.config.api.openai_api_base.rstrip('/')}{path}"

    async def submit(
        self,
        prompt: str,
        model: Union[VideoModel, str] = VideoModel.SORA_2,
        size: Union[VideoSize, str] = VideoSize.HD_LANDSCAPE,
        seconds: int = 8,
        reference_image: Optional[ReferenceImage] = None,
    ) -> VideoJob:
        """
        Create a video job.

        Returns:
            The job snapshot as reported right after creation

        Raises:
            ProviderNotConfigured: API key missing (no network call made)
            ProviderError: provider rejected the job or the call failed
        """
        headers = self._headers()
        fields = {
            "model": _enum_value(model),
            "prompt": prompt,
            "size": _enum_value(size),
            "seconds": str(seconds),
        }
        strategy = select_submission_strategy(reference_image)

        logger.info(
            f"Sora request: model={fields['model']}, size={fields['size']}, seconds={seconds}, "
            f"strategy={strategy.name}, prompt={prompt[:50]}..."
        )

        client = await self._get_client()
        try:
            response = await strategy.send(client, self._url("/videos"), headers, fields, reference_image)
        except httpx.TimeoutException as e:
            raise ProviderError(PROVIDER, None, f"timeout: {type(e).__name__}") from e
        except httpx.RequestError as e:
            raise ProviderError(PROVIDER, None, f"request failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            logger.error(f"Sora API error: {response.status_code} - {response.text[:500]}")
            raise ProviderError(PROVIDER, response.status_code, response.text)

        job = VideoJob.from_provider(self._json(response))
        logger.info(f"Sora job created: {job.id} ({job.status.value})")
        return job

    async def poll(self, job_id: str) -> VideoJob:
        """
        Fetch a single status snapshot. Never loops.

        Raises:
            JobNotReady: the job is not visible yet or the fetch timed out
            ProviderError: any other failure
        """
        headers = self._headers()
        client = await self._get_client()

        try:
            response = await client.get(self._url(f"/videos/{job_id}"), headers=headers)
        except httpx.TimeoutException as e:
            raise JobNotReady(PROVIDER, None, f"status fetch timed out: {type(e).__name__}") from e
        except httpx.RequestError as e:
            raise ProviderError(PROVIDER, None, f"request failed: {type(e).__name__}: {e}") from e

        if response.status_code in NOT_READY_STATUS_CODES:
            raise JobNotReady(PROVIDER, response.status_code, response.text)

        if not response.is_success:
            logger.error(f"Sora status error for {job_id}: {response.status_code} - {response.text[:500]}")
            raise ProviderError(PROVIDER, response.status_code, response.text)

        return VideoJob.from_provider(self._json(response))

    async def retrieve_artifact(
        self,
        job: VideoJob,
        variant: Union[ArtifactVariant, str] = ArtifactVariant.VIDEO,
    ) -> VideoArtifact:
        """
        Download one representation of a completed job.

        Raises:
            InvalidVariant: unknown variant
            JobFailed: job failed and will never have artifacts
            ArtifactNotReady: job is still queued or processing (no network call made)
            ProviderError: download failed
        """
        try:
            variant = ArtifactVariant(variant)
        except ValueError:
            allowed = ", ".join(v.value for v in ArtifactVariant)
            raise InvalidVariant(f"Invalid variant. Must be one of: {allowed}")

        if job.status == VideoJobStatus.FAILED:
            raise JobFailed(job.id, job.error)
        if job.status != VideoJobStatus.COMPLETED:
            raise ArtifactNotReady(job.id, job.status.value)

        headers = self._headers()
        client = await self._get_client()

        try:
            response = await client.get(
                self._url(f"/videos/{job.id}/content"),
                params={"variant": variant.value},
                headers=headers,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(PROVIDER, None, f"timeout: {type(e).__name__}") from e
        except httpx.RequestError as e:
            raise ProviderError(PROVIDER, None, f"request failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            logger.error(f"Sora download error for {job.id}: {response.status_code} - {response.text[:500]}")
            raise ProviderError(PROVIDER, response.status_code, response.text)

        logger.info(f"Sora {variant.value} downloaded for {job.id} ({len(response.content) / 1024:.1f} KB)")
        return VideoArtifact(job_id=job.id, variant=variant, content=response.content)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(PROVIDER, response.status_code, f"invalid JSON: {response.text[:200]}") from e
        if not isinstance(data, dict):
            raise ProviderError(PROVIDER, response.status_code, f"unexpected response: {str(data)[:200]}")
        return data
