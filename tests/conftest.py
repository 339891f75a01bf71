"""Shared fixtures for relay tests."""

import base64
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import APIConfig, Config, PollingConfig, RateLimitConfig, ServerConfig, ValidationConfig

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def build_config(**server_overrides) -> Config:
    """Config with fixed values, independent of the environment."""
    return Config(
        api=APIConfig(
            google_project_id="test-project",
            google_credentials_path="/nonexistent/vertex.json",
            gemini_location="us-central1",
            gemini_image_model="gemini-2.5-flash-image",
            image_timeout_seconds=5.0,
            openai_api_key="sk-test",
            openai_api_base="https://api.openai.test/v1",
            video_timeout_seconds=5.0,
        ),
        rate_limit=RateLimitConfig(window_seconds=60.0, max_requests=100, max_entries=1000),
        polling=PollingConfig(max_attempts=5, interval_seconds=0.0),
        validation=ValidationConfig(max_reference_image_bytes=1024 * 1024),
        server=ServerConfig(
            host="127.0.0.1",
            port=3000,
            environment=server_overrides.get("environment", "production"),
            max_body_bytes=server_overrides.get("max_body_bytes", 2 * 1024 * 1024),
        ),
    )


@pytest.fixture
def config() -> Config:
    return build_config()


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def png_data_uri() -> str:
    return "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


@pytest.fixture
def config_factory():
    """build_config as a fixture, for tests that need non-default server settings."""
    return build_config
