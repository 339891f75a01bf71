"""
Configuration management for the generation relay.

Centralizes all configuration including:
- Provider credentials and endpoints (Vertex AI Gemini, OpenAI Sora)
- Rate limiting windows
- Video job polling cadence
- HTTP server settings
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


@dataclass
class APIConfig:
    """Provider configuration for image and video generation."""

    # Image generation (Gemini on Vertex AI, service account auth)
    google_project_id: str = field(
        default_factory=lambda: os.getenv("GOOGLE_PROJECT_ID") or os.getenv("PROJECT_ID", "")
    )
    google_credentials_path: str = field(
        default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "./keys/vertex.json")
    )
    gemini_location: str = field(default_factory=lambda: os.getenv("GEMINI_LOCATION", "us-central1"))
    gemini_image_model: str = field(
        default_factory=lambda: os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
    )
    image_timeout_seconds: float = field(default_factory=lambda: _env_float("IMAGE_TIMEOUT_SECONDS", 120.0))

    # Video generation (OpenAI Sora)
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_api_base: str = field(default_factory=lambda: os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"))
    video_timeout_seconds: float = field(default_factory=lambda: _env_float("VIDEO_TIMEOUT_SECONDS", 300.0))

    @property
    def vertex_endpoint(self) -> str:
        """Full generateContent URL for the configured Gemini image model."""
        location = self.gemini_location
        return (
            f"https://{location}-aiplatform.googleapis.com/v1/projects/{self.google_project_id}"
            f"/locations/{location}/publishers/google/models/{self.gemini_image_model}:generateContent"
        )

    def has_google_credentials(self) -> bool:
        return bool(self.google_credentials_path) and Path(self.google_credentials_path).expanduser().exists()


@dataclass
class RateLimitConfig:
    """Fixed-window admission control settings."""
    window_seconds: float = field(default_factory=lambda: _env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0))
    max_requests: int = field(default_factory=lambda: _env_int("RATE_LIMIT_MAX_REQUESTS", 100))
    max_entries: int = field(default_factory=lambda: _env_int("RATE_LIMIT_MAX_ENTRIES", 10_000))


@dataclass
class PollingConfig:
    """Video job polling settings."""
    max_attempts: int = field(default_factory=lambda: _env_int("VIDEO_POLL_MAX_ATTEMPTS", 60))
    interval_seconds: float = field(default_factory=lambda: _env_float("VIDEO_POLL_INTERVAL_SECONDS", 5.0))


@dataclass
class ValidationConfig:
    """Limits applied while validating inbound requests."""
    max_reference_image_bytes: int = field(
        default_factory=lambda: _env_int("MAX_REFERENCE_IMAGE_BYTES", 50 * 1024 * 1024)
    )


@dataclass
class ServerConfig:
    """HTTP server settings."""
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 3000))
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "production").lower())
    max_body_bytes: int = field(default_factory=lambda: _env_int("MAX_BODY_BYTES", 50 * 1024 * 1024))
    service_name: str = "genrelay"


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    @property
    def is_development(self) -> bool:
        return self.server.environment in ("development", "dev", "local")

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.google_project_id:
            issues.append("GOOGLE_PROJECT_ID (or PROJECT_ID) not configured (needed for image generation)")

        if not self.api.has_google_credentials():
            issues.append(
                f"Google credentials file not found at {self.api.google_credentials_path} "
                "(needed for image generation)"
            )

        if not self.api.openai_api_key:
            issues.append("OPENAI_API_KEY not configured (needed for video generation)")

        if self.rate_limit.max_requests < 1:
            issues.append("RATE_LIMIT_MAX_REQUESTS must be at least 1")

        if self.rate_limit.window_seconds <= 0:
            issues.append("RATE_LIMIT_WINDOW_SECONDS must be positive")

        if self.polling.max_attempts < 1:
            issues.append("VIDEO_POLL_MAX_ATTEMPTS must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
