"""
Generation Relay HTTP Server

FastAPI server that provides:
- POST /generate-image - Text-to-image / image-to-image (synchronous)
- POST /generate-video - Create a video job (returns 202 with the job)
- GET /videos/{job_id} - Video job status
- GET /videos/{job_id}/content - Download a completed job's artifact
- GET /health - Health check
- GET / - Service info

Usage:
    # Start server
    python -m uvicorn services.api.server:app --host 0.0.0.0 --port 3000

    # Or via main.py
    python main.py server
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.config import Config, get_config
from core.errors import GenerationError, ProviderError, RateLimitExceeded
from core.rate_limiter import RateLimitDecision, RateLimiter
from services.generation.dispatcher import ANONYMOUS_CLIENT, GenerationDispatcher
from services.generation.models import GenerationMode
from services.generation.validation import validate_request

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
INTERNAL_ERROR_MESSAGE = "Internal server error. Please try again later."
BODY_METHODS = {"POST", "PUT", "PATCH"}


# Request bodies. Fields stay untyped so the validator, not pydantic,
# decides what is acceptable and how it is reported.
class ImageGenerationBody(BaseModel):
    """Body of POST /generate-image."""
    model_config = ConfigDict(extra="allow")

    prompt: Any = None
    aspectRatio: Any = None
    image: Any = None


class VideoGenerationBody(BaseModel):
    """Body of POST /generate-video."""
    model_config = ConfigDict(extra="allow")

    prompt: Any = None
    model: Any = None
    size: Any = None
    seconds: Any = None
    image: Any = None


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _client_identity(request: Request) -> str:
    return request.headers.get("x-user-id") or ANONYMOUS_CLIENT


def _rate_limit_headers(decision: Optional[RateLimitDecision]) -> dict[str, str]:
    if decision is None:
        return {}
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(max(1, int(decision.retry_after + 0.999)))
    return headers


def error_status(exc: GenerationError) -> int:
    """HTTP status for a relay error. Upstream 404s stay 404s."""
    if isinstance(exc, ProviderError) and exc.status_code == 404:
        return 404
    return exc.http_status


def error_body(exc: Exception, config: Config) -> dict[str, Any]:
    """Client-facing error body: {error, code, details?}."""
    if isinstance(exc, GenerationError):
        message = exc.public_message
        if isinstance(exc, ProviderError) and exc.status_code == 404:
            message = "Video not found."
        body = {"error": message, "code": exc.error_code}
    else:
        body = {"error": INTERNAL_ERROR_MESSAGE, "code": "internal_error"}

    if config.is_development:
        body["details"] = str(exc)
    return body


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than max_body_bytes with 413.

    Declared Content-Length is checked up front. Bodies without one (chunked
    uploads) are counted while they are read and buffered up to the limit,
    then replayed to the application.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in BODY_METHODS:
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_bytes:
            await self._reject(scope, receive, send, content_length)
            return

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                # Client went away before finishing the upload
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.max_body_bytes:
                await self._reject(scope, receive, send, f"{received}+")
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: str) -> None:
        client = scope.get("client")
        logger.warning(f"Rejected {size}-byte body from {client[0] if client else 'unknown'}")
        limit_mb = max(1, self.max_body_bytes // (1024 * 1024))
        response = JSONResponse(
            status_code=413,
            content={
                "error": f"Image file is too large. Please use an image smaller than {limit_mb}MB.",
                "code": "payload_too_large",
            },
        )
        await response(scope, receive, send)


def create_app(
    config: Optional[Config] = None,
    dispatcher: Optional[GenerationDispatcher] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        config: Optional config override
        dispatcher: Optional dispatcher (tests pass one with fake providers)
        rate_limiter: Optional limiter (defaults to one built from config)
    """
    if config is None:
        config = get_config()
    if dispatcher is None:
        dispatcher = GenerationDispatcher(config=config)
    if rate_limiter is None:
        rate_limiter = RateLimiter.from_config(config.rate_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(f"Starting {config.server.service_name} ({config.server.environment})...")
        for issue in config.validate():
            logger.warning(f"Config issue: {issue}")

        yield

        logger.info(f"Shutting down {config.server.service_name}...")
        await dispatcher.close()

    app = FastAPI(
        title="Generation Relay API",
        description="Relay for Gemini image generation and Sora video jobs",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.dispatcher = dispatcher
    app.state.rate_limiter = rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request size guard ───────────────────────────────────────────────────

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=config.server.max_body_bytes)

    # ── Exception handlers ───────────────────────────────────────────────────

    @app.exception_handler(GenerationError)
    async def _generation_error_handler(request: Request, exc: GenerationError):
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content=error_body(exc, config),
            headers=_rate_limit_headers(getattr(request.state, "rate_limit", None)),
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        body = {"error": "Request body must be a JSON object.", "code": "invalid_request"}
        if config.is_development:
            body["details"] = str(exc.errors())
        return JSONResponse(
            status_code=400,
            content=body,
            headers=_rate_limit_headers(getattr(request.state, "rate_limit", None)),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content=error_body(exc, config))

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def admit(request: Request, response: Response) -> RateLimitDecision:
        """Per-address admission, run before the body is validated."""
        address = _client_address(request)
        decision = rate_limiter.admit(address)
        request.state.rate_limit = decision
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {address}, retry after {decision.retry_after:.1f}s")
            raise RateLimitExceeded(address, decision.retry_after)
        response.headers.update(_rate_limit_headers(decision))
        return decision

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "service": config.server.service_name,
            "version": VERSION,
            "endpoints": {
                "POST /generate-image": "Generate or transform an image",
                "POST /generate-video": "Create a video generation job",
                "GET /videos/{job_id}": "Video job status",
                "GET /videos/{job_id}/content": "Download video, thumbnail or spritesheet",
                "GET /health": "Health check",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": config.server.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **dispatcher.health(),
            "rateLimiter": rate_limiter.get_status(),
        }

    @app.post("/generate-image")
    async def generate_image(body: ImageGenerationBody, request: Request, _: RateLimitDecision = Depends(admit)):
        """Generate an image from a prompt, optionally transforming a reference image."""
        generation_request = validate_request(
            body.model_dump(),
            GenerationMode.IMAGE,
            max_image_bytes=config.validation.max_reference_image_bytes,
        )
        envelope = await dispatcher.dispatch(generation_request, client_id=_client_identity(request))
        return envelope.to_dict()

    @app.post("/generate-video", status_code=202)
    async def generate_video(body: VideoGenerationBody, request: Request, _: RateLimitDecision = Depends(admit)):
        """Create a video job. Poll GET /videos/{job_id} for progress."""
        generation_request = validate_request(
            body.model_dump(),
            GenerationMode.VIDEO,
            max_image_bytes=config.validation.max_reference_image_bytes,
        )
        envelope = await dispatcher.dispatch(generation_request, client_id=_client_identity(request))
        return envelope.to_dict()

    @app.get("/videos/{job_id}")
    async def get_video(job_id: str):
        """Current status of a video job."""
        job = await dispatcher.job_status(job_id)
        return job.to_dict()

    @app.get("/videos/{job_id}/content")
    async def get_video_content(job_id: str, variant: str = "video"):
        """Binary artifact of a completed job."""
        artifact = await dispatcher.job_artifact(job_id, variant)
        return Response(
            content=artifact.content,
            media_type=artifact.content_type,
            headers={"Content-Disposition": f'inline; filename="{job_id}-{artifact.variant.value}"'},
        )

    return app


app = create_app()


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the server using uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=host or config.server.host, port=port or config.server.port)


if __name__ == "__main__":
    run_server()
