#!/usr/bin/env python3
"""
Generation Relay - Main Entry Point

Runs the HTTP relay, or talks to the providers directly from the command line.

Usage:
    # Start the HTTP server
    python main.py server

    # Generate an image
    python main.py image --prompt "a fatbike on a beach" --aspect-ratio 16:9

    # Create a video job and wait for it
    python main.py video --prompt "waves at sunset" --seconds 4 --wait

    # Monitor a job through a running relay
    python main.py monitor video_abc123
"""

import argparse
import asyncio
import base64
import json
import logging
import mimetypes
import sys
import time
from pathlib import Path
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("genrelay")

EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
}


def load_image_argument(value: Optional[str]) -> Optional[str]:
    """Accept a file path, a data URI or bare base64; return what the validator expects."""
    if not value:
        return None
    path = Path(value).expanduser()
    if path.is_file():
        mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"
    return value


def save_data_uri(data_uri: str, output_dir: Path, stem: str) -> Path:
    """Write a data:<mime>;base64,<payload> image to output_dir."""
    header, _, payload = data_uri.partition(",")
    mime_type = header[5:].split(";")[0] if header.startswith("data:") else "image/png"
    target = output_dir / f"{stem}{EXTENSIONS.get(mime_type, '.png')}"
    target.write_bytes(base64.b64decode(payload))
    return target


async def generate_image(
    prompt: str,
    aspect_ratio: Optional[str] = None,
    image: Optional[str] = None,
    output_dir: str = "./output",
) -> list[Path]:
    """Generate (or transform) an image and write the results to output_dir."""
    from core.config import get_config
    from services.generation import GenerationDispatcher, GenerationMode, validate_request

    config = get_config()
    request = validate_request(
        {"prompt": prompt, "aspectRatio": aspect_ratio, "image": load_image_argument(image)},
        GenerationMode.IMAGE,
        max_image_bytes=config.validation.max_reference_image_bytes,
    )

    dispatcher = GenerationDispatcher(config=config)
    try:
        envelope = await dispatcher.dispatch(request, client_id="cli")
    finally:
        await dispatcher.close()

    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    stamp = time.strftime("%Y%m%d-%H%M%S")

    paths = []
    for index, data_uri in enumerate(envelope.artifacts):
        path = save_data_uri(data_uri, output, f"image-{stamp}-{index}")
        logger.info(f"Saved {path}")
        paths.append(path)
    return paths


async def generate_video(
    prompt: str,
    model: Optional[str] = None,
    size: Optional[str] = None,
    seconds: Optional[str] = None,
    image: Optional[str] = None,
    wait: bool = False,
    output_dir: str = "./output",
) -> dict:
    """
    Create a video job. With wait, poll to a terminal state and download the video.

    Returns:
        The response envelope as a dict
    """
    from cli.progress_monitor import format_progress
    from core.config import get_config
    from services.generation import GenerationDispatcher, GenerationMode, validate_request

    config = get_config()
    request = validate_request(
        {
            "prompt": prompt,
            "model": model,
            "size": size,
            "seconds": seconds,
            "image": load_image_argument(image),
        },
        GenerationMode.VIDEO,
        max_image_bytes=config.validation.max_reference_image_bytes,
    )

    dispatcher = GenerationDispatcher(config=config)
    started = time.monotonic()

    def print_progress(update: dict):
        print(format_progress(update, time.monotonic() - started), end="", flush=True)

    try:
        if not wait:
            envelope = await dispatcher.dispatch(request, client_id="cli")
            logger.info(f"Video job created: {envelope.job.id}")
            return envelope.to_dict()

        envelope = await dispatcher.dispatch_and_wait(request, client_id="cli", on_progress=print_progress)
        print()

        artifact = await dispatcher.video_client.retrieve_artifact(envelope.job, "video")
        output = Path(output_dir)
        output.mkdir(parents=True, exist_ok=True)
        path = output / f"{envelope.job.id}.mp4"
        path.write_bytes(artifact.content)
        logger.info(f"Saved {path} ({len(artifact.content) / 1024 / 1024:.1f} MB)")

        result = envelope.to_dict()
        result["outputPath"] = str(path)
        return result
    finally:
        await dispatcher.close()


async def job_status(job_id: str) -> dict:
    """Fetch one status snapshot straight from the provider."""
    from services.video_generation import VideoGenerationClient

    client = VideoGenerationClient()
    try:
        job = await client.poll(job_id)
        return job.to_dict()
    finally:
        await client.close()


async def monitor_job(job_id: str, server_url: str = "http://localhost:3000", interval: float = 5.0):
    """Monitor an existing job's progress through a running relay."""
    from cli.progress_monitor import ProgressMonitor

    monitor = ProgressMonitor(job_id=job_id, server_url=server_url, interval_seconds=interval)
    return await monitor.start()


async def check_health(server_url: str) -> dict:
    """Query a running relay's /health endpoint."""
    from cli.progress_monitor import RelayClient

    async with RelayClient(server_url, timeout_seconds=10) as relay:
        return await relay.check_health()


def main():
    parser = argparse.ArgumentParser(
        description="Generation Relay - Gemini image and Sora video relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start the HTTP server
    python main.py server --port 3000

    # Text-to-image
    python main.py image --prompt "A lighthouse in a storm" --aspect-ratio 16:9

    # Image-to-image
    python main.py image --prompt "Make it watercolor" --image ./photo.jpg

    # Video job, wait for completion and download
    python main.py video --prompt "A paper boat on a river" --seconds 4 --wait

    # Check a relay
    python main.py health --server http://localhost:3000
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the HTTP relay")
    server_parser.add_argument("--host", default=None, help="Host to bind (default: HOST or 0.0.0.0)")
    server_parser.add_argument("--port", type=int, default=None, help="Port to bind (default: PORT or 3000)")

    # Image command
    image_parser = subparsers.add_parser("image", help="Generate or transform an image")
    image_parser.add_argument("--prompt", "-p", required=True, help="Image description")
    image_parser.add_argument("--aspect-ratio", "-a", default=None, help="1:1, 16:9, 9:16, 4:3 or 3:4")
    image_parser.add_argument("--image", "-i", help="Reference image (file path, data URI or base64)")
    image_parser.add_argument("--output", "-o", default="./output", help="Output directory")

    # Video command
    video_parser = subparsers.add_parser("video", help="Create a video generation job")
    video_parser.add_argument("--prompt", "-p", required=True, help="Video description")
    video_parser.add_argument("--model", "-m", default=None, help="sora-2 or sora-2-pro")
    video_parser.add_argument("--size", "-s", default=None, help="e.g. 1280x720")
    video_parser.add_argument("--seconds", default=None, help="Duration in seconds")
    video_parser.add_argument("--image", "-i", help="Reference image (file path, data URI or base64)")
    video_parser.add_argument("--wait", "-w", action="store_true", help="Poll until done and download")
    video_parser.add_argument("--output", "-o", default="./output", help="Output directory")

    # Status command
    status_parser = subparsers.add_parser("status", help="Check a video job directly with the provider")
    status_parser.add_argument("job_id", help="Video job ID")

    # Monitor command
    mon_parser = subparsers.add_parser("monitor", help="Monitor a video job through a running relay")
    mon_parser.add_argument("job_id", help="Video job ID to monitor")
    mon_parser.add_argument("--server", default="http://localhost:3000", help="Relay URL")
    mon_parser.add_argument("--interval", type=float, default=5.0, help="Seconds between polls")

    # Health command
    health_parser = subparsers.add_parser("health", help="Check a running relay")
    health_parser.add_argument("--server", default="http://localhost:3000", help="Relay URL")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    from core.errors import GenerationError

    try:
        # Run appropriate command
        if args.command == "server":
            from services.api.server import run_server

            run_server(host=args.host, port=args.port)

        elif args.command == "image":
            paths = asyncio.run(
                generate_image(
                    prompt=args.prompt,
                    aspect_ratio=args.aspect_ratio,
                    image=args.image,
                    output_dir=args.output,
                )
            )
            for path in paths:
                print(path)
            sys.exit(0 if paths else 1)

        elif args.command == "video":
            result = asyncio.run(
                generate_video(
                    prompt=args.prompt,
                    model=args.model,
                    size=args.size,
                    seconds=args.seconds,
                    image=args.image,
                    wait=args.wait,
                    output_dir=args.output,
                )
            )
            print(json.dumps(result, indent=2))

        elif args.command == "status":
            print(json.dumps(asyncio.run(job_status(args.job_id)), indent=2))

        elif args.command == "monitor":
            job = asyncio.run(monitor_job(args.job_id, args.server, args.interval))
            sys.exit(0 if job and job.get("status") == "completed" else 1)

        elif args.command == "health":
            import aiohttp

            try:
                data = asyncio.run(check_health(args.server))
            except aiohttp.ClientError as e:
                print(f"Cannot connect to server: {e}")
                sys.exit(1)
            print(f"Server: {args.server}")
            print(f"Status: {data.get('status')}")
            print(f"Image generation: {'available' if data.get('imageGenerationAvailable') else 'unavailable'}")
            print(f"Video generation: {'available' if data.get('videoGenerationAvailable') else 'unavailable'}")

    except GenerationError as e:
        logger.error(f"{e.error_code}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
