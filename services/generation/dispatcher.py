"""
Generation Dispatcher

Routes a validated GenerationRequest to the image or video provider and wraps
the outcome in a GenerationEnvelope:

    image  -> ImageGenerationClient.generate_image  (synchronous, artifacts inline)
    video  -> VideoGenerationClient.submit          (asynchronous, job snapshot)

Provider errors propagate untouched; mapping them to responses is the
boundary's job.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol, Union

from core.config import get_config

from .models import GenerationEnvelope, GenerationMode, GenerationRequest, GenerationType

if TYPE_CHECKING:
    from services.image_generation.client import ImageGenerationClient
    from services.video_generation.client import VideoArtifact, VideoGenerationClient, VideoJob
    from services.video_generation.poller import JobPoller

logger = logging.getLogger(__name__)

ANONYMOUS_CLIENT = "anonymous"


# ============================================================
# Request log sink
# ============================================================

@dataclass(frozen=True)
class RequestLogEntry:
    """One dispatched request, as seen by the log sink."""
    client_id: str
    prompt: str
    generation_type: GenerationType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "clientId": self.client_id,
            "prompt": self.prompt,
            "generationType": self.generation_type.value,
            "timestamp": self.timestamp.isoformat(),
        }


class RequestLogSink(Protocol):
    """Anything that can record a request. record() may be sync or async."""

    def record(self, entry: RequestLogEntry) -> Union[None, Awaitable[None]]:
        ...


class LoggingRequestLog:
    """Default sink: one INFO line per request."""

    def record(self, entry: RequestLogEntry) -> None:
        logger.info(
            f"Request from {entry.client_id}: {entry.generation_type.value} - {entry.prompt[:100]}"
        )


# ============================================================
# Dispatcher
# ============================================================

class GenerationDispatcher:
    """
    Single entry point from the boundary into the providers.

    Usage:
        dispatcher = GenerationDispatcher()

        request = validate_request(body, "image")
        envelope = await dispatcher.dispatch(request, client_id="user-42")
        return envelope.to_dict()
    """

    def __init__(
        self,
        image_client: Optional["ImageGenerationClient"] = None,
        video_client: Optional["VideoGenerationClient"] = None,
        poller: Optional["JobPoller"] = None,
        request_log: Optional[RequestLogSink] = None,
        config: Optional[Any] = None,
    ):
        self.config = config or get_config()

        if image_client is None:
            from services.image_generation.client import ImageGenerationClient

            image_client = ImageGenerationClient(config=self.config)
        if video_client is None:
            from services.video_generation.client import VideoGenerationClient

            video_client = VideoGenerationClient(config=self.config)
        if poller is None:
            from services.video_generation.poller import JobPoller

            poller = JobPoller(video_client, config=self.config)

        self.image_client = image_client
        self.video_client = video_client
        self.poller = poller
        self.request_log = request_log if request_log is not None else LoggingRequestLog()
        self._log_tasks: set[asyncio.Task] = set()

    # --------------------------------------------------------
    # Request log
    # --------------------------------------------------------

    def _record(self, request: GenerationRequest, client_id: str):
        """Hand the request to the sink without letting it affect the request."""
        entry = RequestLogEntry(
            client_id=client_id or ANONYMOUS_CLIENT,
            prompt=request.prompt,
            generation_type=request.generation_type,
        )
        try:
            result = self.request_log.record(entry)
        except Exception as e:
            logger.warning(f"Request log sink failed: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._log_tasks.add(task)
            task.add_done_callback(self._log_task_done)

    def _log_task_done(self, task: asyncio.Task):
        self._log_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Request log sink failed: {error}")

    # --------------------------------------------------------
    # Dispatch
    # --------------------------------------------------------

    async def dispatch(
        self,
        request: GenerationRequest,
        client_id: str = ANONYMOUS_CLIENT,
    ) -> GenerationEnvelope:
        """
        Send a request to its provider.

        Image requests return with artifacts; video requests return as soon as
        the job is created, carrying the job snapshot.
        """
        self._record(request, client_id)

        if request.mode == GenerationMode.IMAGE:
            images = await self.image_client.generate_image(
                prompt=request.prompt,
                aspect_ratio=request.aspect_ratio,
                reference_image=request.reference_image,
            )
            return GenerationEnvelope(
                generation_type=request.generation_type,
                parameters=request.echoed_parameters(),
                artifacts=tuple(images),
            )

        job = await self._submit(request)
        return GenerationEnvelope(
            generation_type=request.generation_type,
            parameters=request.echoed_parameters(),
            job=job,
        )

    async def dispatch_and_wait(
        self,
        request: GenerationRequest,
        client_id: str = ANONYMOUS_CLIENT,
        on_progress: Optional[Callable[[dict[str, Any]], Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationEnvelope:
        """Video only: submit, then poll until the job is terminal."""
        if request.mode != GenerationMode.VIDEO:
            return await self.dispatch(request, client_id)

        self._record(request, client_id)
        job = await self._submit(request)
        job = await self.poller.poll_until_terminal(
            job.id,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        return GenerationEnvelope(
            generation_type=request.generation_type,
            parameters=request.echoed_parameters(),
            job=job,
        )

    async def _submit(self, request: GenerationRequest) -> "VideoJob":
        return await self.video_client.submit(
            prompt=request.prompt,
            model=request.model,
            size=request.size,
            seconds=request.seconds,
            reference_image=request.reference_image,
        )

    # --------------------------------------------------------
    # Job lookups
    # --------------------------------------------------------

    async def job_status(self, job_id: str) -> "VideoJob":
        """One status snapshot of a video job."""
        return await self.video_client.poll(job_id)

    async def job_artifact(self, job_id: str, variant: str = "video") -> "VideoArtifact":
        """Fetch the job, then download the requested variant if it is complete."""
        from core.errors import InvalidVariant
        from services.video_generation.client import ArtifactVariant

        try:
            variant = ArtifactVariant(variant)
        except ValueError:
            allowed = ", ".join(v.value for v in ArtifactVariant)
            raise InvalidVariant(f"Invalid variant. Must be one of: {allowed}")

        job = await self.video_client.poll(job_id)
        return await self.video_client.retrieve_artifact(job, variant)

    # --------------------------------------------------------
    # Health / lifecycle
    # --------------------------------------------------------

    def health(self) -> dict[str, bool]:
        return {
            "imageGenerationAvailable": self._available(self.image_client),
            "videoGenerationAvailable": self._available(self.video_client),
        }

    @staticmethod
    def _available(client: Any) -> bool:
        try:
            return bool(client.is_configured())
        except Exception as e:
            logger.warning(f"Availability check failed for {type(client).__name__}: {e}")
            return False

    async def close(self):
        """Close provider clients and wait for pending log writes."""
        if self._log_tasks:
            await asyncio.gather(*self._log_tasks, return_exceptions=True)
        await self.image_client.close()
        await self.video_client.close()
