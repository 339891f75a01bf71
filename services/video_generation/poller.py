"""
Job Poller - drives a video job from submission to a terminal state.

One poll per attempt, fixed wait between attempts, bounded by an attempt
budget. Only "not ready yet" outcomes are retried; anything else ends the
loop immediately.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from core.config import get_config
from core.errors import JobFailed, JobNotReady, PollingCancelled, PollingTimeout

from .client import VideoGenerationClient, VideoJob, VideoJobStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]
SleepFunction = Callable[[float], Awaitable[None]]


class JobStillRunning(Exception):
    """Raised inside an attempt when the snapshot is not terminal yet."""

    def __init__(self, job: VideoJob):
        self.job = job
        super().__init__(f"Job {job.id} still {job.status.value}")


class JobPoller:
    """
    Polls a video job until it completes, fails, or runs out of attempts.

    Usage:
        poller = JobPoller(video_client)

        job = await poller.poll_until_terminal(
            job_id,
            on_progress=lambda p: print(p["status"], p["progress"]),
        )
    """

    def __init__(
        self,
        client: VideoGenerationClient,
        config: Optional[Any] = None,
        sleep: Optional[SleepFunction] = None,
    ):
        """
        Args:
            client: Video client whose poll() fetches one snapshot
            config: Optional config override (attempt budget and interval)
            sleep: Async sleep used between attempts (tests pass a no-op)
        """
        self.client = client
        self.config = config or get_config()
        self._sleep = sleep or asyncio.sleep

    async def _notify(self, on_progress: Optional[ProgressCallback], payload: dict[str, Any]):
        if on_progress is None:
            return
        try:
            result = on_progress(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def poll_until_terminal(
        self,
        job_id: str,
        on_progress: Optional[ProgressCallback] = None,
        max_attempts: Optional[int] = None,
        interval_seconds: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> VideoJob:
        """
        Poll until the job is terminal.

        Args:
            job_id: Provider job id
            on_progress: Called with {status, progress, attempt} after every
                successful fetch. May be sync or async.
            max_attempts: Total poll budget (defaults to config)
            interval_seconds: Wait between polls (defaults to config)
            cancel_event: Checked before each attempt

        Returns:
            The completed job snapshot

        Raises:
            JobFailed: provider reported the job as failed
            PollingTimeout: budget exhausted without a terminal state
            PollingCancelled: cancel_event was set
            ProviderError: any non-retryable fetch failure
        """
        if max_attempts is None:
            max_attempts = self.config.polling.max_attempts
        if interval_seconds is None:
            interval_seconds = self.config.polling.interval_seconds
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        last_progress = 0
        last_status: Optional[str] = None
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(interval_seconds),
            retry=retry_if_exception_type((JobStillRunning, JobNotReady)),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info(f"Polling cancelled for {job_id} after {attempts} polls")
                        raise PollingCancelled(job_id, attempts)

                    attempts = attempt.retry_state.attempt_number
                    job = await self.client.poll(job_id)

                    last_status = job.status.value
                    last_progress = max(last_progress, job.progress)
                    logger.info(
                        f"Video job {job_id}: {last_status} ({last_progress}%) "
                        f"[attempt {attempts}/{max_attempts}]"
                    )
                    await self._notify(on_progress, {
                        "status": last_status,
                        "progress": last_progress,
                        "attempt": attempts,
                    })

                    if job.status == VideoJobStatus.FAILED:
                        raise JobFailed(job_id, job.error)
                    if job.status != VideoJobStatus.COMPLETED:
                        raise JobStillRunning(job)
                    return job
        except (JobStillRunning, JobNotReady):
            logger.error(f"Video job {job_id} timed out after {attempts} polls (last status: {last_status})")
            raise PollingTimeout(job_id, attempts, last_status)

        # AsyncRetrying always returns or raises above
        raise PollingTimeout(job_id, attempts, last_status)
