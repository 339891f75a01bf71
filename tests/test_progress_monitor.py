"""
Progress Monitor Tests

Run with:
    python -m pytest tests/test_progress_monitor.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cli.progress_monitor import ProgressMonitor, RelayError


def make_relay_client(*jobs):
    client = MagicMock()
    client.get_video = AsyncMock(side_effect=list(jobs))
    client.close = AsyncMock()
    return client


class TestProgressMonitor:
    """Polling loop against the relay."""

    @pytest.mark.asyncio
    async def test_stops_on_completed(self):
        client = make_relay_client(
            {"id": "video_123", "status": "processing", "progress": 40},
            {"id": "video_123", "status": "completed", "progress": 100},
        )
        monitor = ProgressMonitor("video_123", interval_seconds=0, client=client)

        job = await monitor.start()

        assert job["status"] == "completed"
        assert client.get_video.await_count == 2
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_job_stops(self):
        client = make_relay_client(RelayError(404, "Video not found."))
        monitor = ProgressMonitor("video_missing", interval_seconds=0, client=client)

        assert await monitor.start() is None
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_propagates_after_cleanup(self):
        started = asyncio.Event()

        async def hang(job_id):
            started.set()
            await asyncio.Event().wait()

        client = MagicMock()
        client.get_video = AsyncMock(side_effect=hang)
        client.close = AsyncMock()
        monitor = ProgressMonitor("video_123", interval_seconds=0, client=client)

        task = asyncio.create_task(monitor.start())
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        client.close.assert_awaited_once()
