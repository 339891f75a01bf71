#!/usr/bin/env python3
"""
CLI Relay Client and Video Progress Monitor

Talks to a running relay over HTTP and displays video job progress with
visual formatting.

Usage:
    python -m cli.progress_monitor video_abc123
    python -m cli.progress_monitor --server http://localhost:3000 video_abc123
"""

import argparse
import asyncio
import time
from pathlib import Path
from typing import Any, Optional

import aiohttp

TERMINAL_STATUSES = ("completed", "failed")


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Clear line
    CLEAR_LINE = "\033[2K\r"


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    return f"{color}{text}{Colors.RESET}"


def progress_bar(percent: float, width: int = 30) -> str:
    """Create a visual progress bar."""
    percent = max(0.0, min(100.0, percent))
    filled = int(percent / 100 * width)
    bar = "█" * filled + "░" * (width - filled)

    if percent >= 100:
        color = Colors.GREEN
    elif percent >= 50:
        color = Colors.CYAN
    elif percent >= 25:
        color = Colors.YELLOW
    else:
        color = Colors.WHITE

    return colored(f"[{bar}]", color) + f" {percent:5.1f}%"


def format_duration(seconds: float) -> str:
    """Format duration as HH:MM:SS or MM:SS."""
    if seconds < 0:
        return "--:--"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


STATUS_STYLE = {
    "queued": ("⏸️", Colors.DIM),
    "processing": ("⏳", Colors.CYAN),
    "completed": ("✅", Colors.GREEN),
    "failed": ("❌", Colors.RED),
}


def format_progress(update: dict, elapsed: float) -> str:
    """One in-place progress line for a poll update ({status, progress, attempt?})."""
    status = update.get("status", "unknown")
    icon, color = STATUS_STYLE.get(status, ("•", Colors.WHITE))
    attempt = update.get("attempt")
    attempt_info = f" poll {attempt}" if attempt else ""

    return (
        f"{Colors.CLEAR_LINE}"
        f"{icon} {progress_bar(float(update.get('progress') or 0))} "
        f"{colored(status, color)}"
        f"{colored(attempt_info, Colors.DIM)} "
        f"{colored(format_duration(elapsed), Colors.DIM)}"
    )


class RelayError(Exception):
    """Non-success response from the relay."""

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        self.status = status
        self.code = code
        super().__init__(f"Relay returned {status}: {message}")


class RelayClient:
    """
    HTTP client for a running relay.

    Usage:
        async with RelayClient("http://localhost:3000") as relay:
            health = await relay.check_health()
            result = await relay.generate_image("a red fox", aspect_ratio="16:9")
            job = await relay.generate_video("a red fox running", seconds=4)
    """

    def __init__(
        self,
        server_url: str = "http://localhost:3000",
        timeout_seconds: float = 300.0,
        user_id: Optional[str] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.user_id = user_id
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"x-user-id": self.user_id} if self.user_id else None
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=headers)
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request_json(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        session = self._get_session()
        async with session.request(method, f"{self.server_url}{path}", json=payload) as response:
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = {"error": await response.text()}
            if response.status >= 400:
                data = data if isinstance(data, dict) else {}
                raise RelayError(response.status, data.get("error", "unknown error"), data.get("code"))
            return data

    async def check_health(self) -> dict:
        """GET /health."""
        return await self._request_json("GET", "/health")

    async def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> dict:
        """Text-to-image."""
        return await self._request_json(
            "POST", "/generate-image", {"prompt": prompt, "aspectRatio": aspect_ratio}
        )

    async def transform_image(self, prompt: str, image: str, aspect_ratio: str = "1:1") -> dict:
        """Image-to-image. image is a data URI or bare base64 string."""
        return await self._request_json(
            "POST", "/generate-image", {"prompt": prompt, "aspectRatio": aspect_ratio, "image": image}
        )

    async def generate_video(
        self,
        prompt: str,
        model: Optional[str] = None,
        size: Optional[str] = None,
        seconds: Optional[int] = None,
        image: Optional[str] = None,
    ) -> dict:
        """Create a video job. Returns the 202 envelope with jobId."""
        payload: dict[str, Any] = {"prompt": prompt}
        for key, value in (("model", model), ("size", size), ("seconds", seconds), ("image", image)):
            if value is not None:
                payload[key] = value
        return await self._request_json("POST", "/generate-video", payload)

    async def get_video(self, job_id: str) -> dict:
        """GET /videos/{job_id}."""
        return await self._request_json("GET", f"/videos/{job_id}")

    async def download_video(self, job_id: str, path: str, variant: str = "video") -> Path:
        """Download a completed job's artifact to path."""
        session = self._get_session()
        url = f"{self.server_url}/videos/{job_id}/content"
        async with session.get(url, params={"variant": variant}) as response:
            if response.status >= 400:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {}
                data = data if isinstance(data, dict) else {}
                raise RelayError(response.status, data.get("error", "download failed"), data.get("code"))
            content = await response.read()

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return target


class ProgressMonitor:
    """CLI progress monitor for a relay video job."""

    def __init__(
        self,
        job_id: str,
        server_url: str = "http://localhost:3000",
        interval_seconds: float = 5.0,
        max_polls: int = 120,
        client: Optional[RelayClient] = None,
    ):
        self.job_id = job_id
        self.server_url = server_url.rstrip("/")
        self.interval_seconds = interval_seconds
        self.max_polls = max_polls
        self.client = client or RelayClient(self.server_url)

        self._running = False
        self._last_progress = 0
        self.last_job: Optional[dict] = None

    async def start(self) -> Optional[dict]:
        """Poll until the job is terminal. Returns the last job snapshot."""
        self._running = True
        started = time.monotonic()

        print(colored("\n╔═══════════════════════════════════════════╗", Colors.CYAN))
        print(colored("║  Generation Relay Video Monitor           ║", Colors.CYAN))
        print(colored("╚═══════════════════════════════════════════╝", Colors.CYAN))
        print(f"Job:    {colored(self.job_id, Colors.BOLD)}")
        print(f"Server: {colored(self.server_url, Colors.DIM)}")
        print(colored("─" * 45, Colors.DIM))

        consecutive_errors = 0
        max_errors = 5
        polls = 0

        try:
            while self._running and polls < self.max_polls:
                polls += 1
                try:
                    job = await self.client.get_video(self.job_id)
                    consecutive_errors = 0
                except RelayError as e:
                    if e.status == 404:
                        print(colored(f"\n❌ Job {self.job_id} not found", Colors.RED))
                        break
                    raise
                except aiohttp.ClientError as e:
                    consecutive_errors += 1
                    if consecutive_errors >= max_errors:
                        print(colored(f"\n❌ Failed to reach relay after {max_errors} attempts: {e}", Colors.RED))
                        break
                    print(colored(f"\n⚠️ Connection problem ({consecutive_errors}/{max_errors}): {e}", Colors.YELLOW))
                    await asyncio.sleep(self.interval_seconds)
                    continue

                self.handle_update(job, polls, time.monotonic() - started)
                if job.get("status") in TERMINAL_STATUSES:
                    break
                await asyncio.sleep(self.interval_seconds)
        finally:
            await self.client.close()

        print()
        print(colored("─" * 45, Colors.DIM))
        print(colored("Monitor stopped.", Colors.DIM))
        return self.last_job

    def handle_update(self, job: dict, attempt: int, elapsed: float):
        """Render one snapshot; progress never goes backwards on screen."""
        self.last_job = job
        self._last_progress = max(self._last_progress, int(job.get("progress") or 0))
        update = {"status": job.get("status"), "progress": self._last_progress, "attempt": attempt}
        print(format_progress(update, elapsed), end="", flush=True)

        status = job.get("status")
        if status == "completed":
            print()
            print(colored(f"✅ Video {self.job_id} is ready", Colors.GREEN))
            self._running = False
        elif status == "failed":
            print()
            print(colored(f"❌ Video {self.job_id} failed: {job.get('error') or 'no reason given'}", Colors.RED))
            self._running = False

    def stop(self):
        """Stop monitoring."""
        self._running = False


async def main():
    parser = argparse.ArgumentParser(
        description="Monitor a relay video job",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s video_abc123
    %(prog)s --server http://remote:3000 video_abc123
        """,
    )
    parser.add_argument("job_id", help="Video job ID to monitor")
    parser.add_argument(
        "--server",
        default="http://localhost:3000",
        help="Relay URL (default: http://localhost:3000)",
    )
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between polls")

    args = parser.parse_args()

    monitor = ProgressMonitor(
        job_id=args.job_id,
        server_url=args.server,
        interval_seconds=args.interval,
    )

    try:
        await monitor.start()
    except KeyboardInterrupt:
        print(colored("\n\nInterrupted by user.", Colors.YELLOW))
        monitor.stop()


if __name__ == "__main__":
    asyncio.run(main())
