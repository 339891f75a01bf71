"""
Error taxonomy for the generation relay.

Every failure the core can produce is a GenerationError subclass carrying:
- error_code: stable machine-readable identifier
- http_status: status the HTTP boundary responds with
- public_message: client-facing text (full detail only in development)
"""

from typing import Optional


class GenerationError(Exception):
    """Base class for all relay errors."""

    error_code: str = "internal_error"
    http_status: int = 500
    public_message: str = "Internal server error. Please try again later."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


# ============================================================
# Client-fixable input errors
# ============================================================

class ValidationError(GenerationError):
    """Bad input. Never reaches a provider."""

    error_code = "invalid_request"
    http_status = 400

    @property
    def public_message(self) -> str:
        return str(self)


class MissingPrompt(ValidationError):
    error_code = "missing_prompt"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Missing or invalid prompt. Please provide a valid prompt string.")


class InvalidAspectRatio(ValidationError):
    error_code = "invalid_aspect_ratio"


class InvalidModel(ValidationError):
    error_code = "invalid_model"


class InvalidSize(ValidationError):
    error_code = "invalid_size"


class InvalidDuration(ValidationError):
    error_code = "invalid_duration"


class InvalidImageFormat(ValidationError):
    error_code = "invalid_image_format"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or "Invalid image format. Image must be a base64 string (data URL or base64)."
        )


class InvalidVariant(ValidationError):
    error_code = "invalid_variant"


class RateLimitExceeded(GenerationError):
    """Client exceeded its request budget for the current window."""

    error_code = "rate_limited"
    http_status = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, client_id: str, retry_after: float):
        self.client_id = client_id
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"Rate limit exceeded for {client_id}. Retry after {self.retry_after:.1f} seconds."
        )


# ============================================================
# Deployment / provider errors
# ============================================================

class ProviderNotConfigured(GenerationError):
    """A provider is missing credentials or settings. Not client-fixable."""

    error_code = "provider_not_configured"
    http_status = 500
    public_message = "Server configuration error. Please contact support."

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        super().__init__(f"{provider} is not configured: {reason}")


class ProviderError(GenerationError):
    """The provider rejected or failed the call."""

    error_code = "provider_error"
    http_status = 502
    public_message = "Failed to generate. Please try again later."

    def __init__(self, provider: str, status_code: Optional[int], raw_body: str = ""):
        self.provider = provider
        self.status_code = status_code
        self.raw_body = raw_body
        status = status_code if status_code is not None else "no response"
        super().__init__(f"{provider} API error: {status} - {raw_body[:500]}")


class JobNotReady(ProviderError):
    """Status fetch failed in a way that means 'try again later'."""

    error_code = "job_not_ready"


class NoArtifactsProduced(GenerationError):
    """Provider succeeded but returned nothing usable (often a content-policy refusal)."""

    error_code = "no_artifacts"
    http_status = 502
    public_message = (
        "No images were generated. The prompt may have been refused, please try a different description."
    )

    def __init__(self, provider: str, provider_text: Optional[str] = None):
        self.provider = provider
        self.provider_text = provider_text
        message = (
            "No images were generated. The model may not support image generation, "
            "or the response format is unexpected."
        )
        if provider_text:
            message += f" Provider said: {provider_text[:300]}"
        super().__init__(message)


# ============================================================
# Video job lifecycle errors
# ============================================================

class ArtifactNotReady(GenerationError):
    """Artifact requested for a job that has not completed."""

    error_code = "artifact_not_ready"
    http_status = 409
    public_message = "Video is not ready yet."

    def __init__(self, job_id: str, current_status: str):
        self.job_id = job_id
        self.current_status = current_status
        super().__init__(f"Video {job_id} is not ready (status: {current_status})")


class JobFailed(GenerationError):
    """The provider reported the job as failed."""

    error_code = "job_failed"
    http_status = 502
    public_message = "Video generation failed."

    def __init__(self, job_id: str, provider_message: Optional[str] = None):
        self.job_id = job_id
        self.provider_message = provider_message or "Generation failed (no specific reason)"
        super().__init__(f"Video job {job_id} failed: {self.provider_message}")


class PollingTimeout(GenerationError):
    """The job did not reach a terminal state within the attempt budget."""

    error_code = "polling_timeout"
    http_status = 504
    public_message = "Timed out waiting for the video job."

    def __init__(self, job_id: str, attempts: int, last_status: Optional[str] = None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"Video job {job_id} did not complete within {attempts} polls "
            f"(last status: {last_status or 'unknown'})"
        )


class PollingCancelled(GenerationError):
    """Polling was stopped through its cancel event."""

    error_code = "polling_cancelled"
    http_status = 503
    public_message = "Polling was cancelled."

    def __init__(self, job_id: str, attempts: int):
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(f"Polling for video job {job_id} cancelled after {attempts} polls")
