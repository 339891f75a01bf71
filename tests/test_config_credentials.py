"""
Configuration and Credential Tests

Run with:
    python -m pytest tests/test_config_credentials.py -v
"""

from unittest.mock import MagicMock, patch

import pytest

from core.config import Config, get_config, reload_config
from core.credentials import GoogleCredentialProvider
from google.auth.exceptions import RefreshError

from core.errors import ProviderError, ProviderNotConfigured


class TestConfig:
    """Environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        for name in ("PORT", "APP_ENV", "RATE_LIMIT_MAX_REQUESTS", "VIDEO_POLL_MAX_ATTEMPTS", "GEMINI_LOCATION"):
            monkeypatch.delenv(name, raising=False)

        config = Config.from_env()

        assert config.server.port == 3000
        assert config.server.environment == "production"
        assert config.rate_limit.max_requests == 100
        assert config.rate_limit.window_seconds == 60.0
        assert config.polling.max_attempts == 60
        assert config.polling.interval_seconds == 5.0
        assert config.api.gemini_location == "us-central1"
        assert not config.is_development

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("APP_ENV", "Development")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "5")
        monkeypatch.setenv("PROJECT_ID", "legacy-project")
        monkeypatch.delenv("GOOGLE_PROJECT_ID", raising=False)

        config = Config.from_env()

        assert config.server.port == 8080
        assert config.is_development
        assert config.rate_limit.max_requests == 5
        assert config.api.google_project_id == "legacy-project"

    def test_vertex_endpoint(self, config):
        assert config.api.vertex_endpoint == (
            "https://us-central1-aiplatform.googleapis.com/v1/projects/test-project"
            "/locations/us-central1/publishers/google/models/gemini-2.5-flash-image:generateContent"
        )

    def test_validate_reports_missing_credentials(self, config):
        issues = config.validate()
        assert any("credentials" in issue for issue in issues)
        assert not any("OPENAI_API_KEY" in issue for issue in issues)

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("PORT", "4001")
        reload_config()
        assert get_config().server.port == 4001

        monkeypatch.delenv("PORT")
        reload_config()
        assert get_config().server.port == 3000


class TestGoogleCredentialProvider:
    """Service account loading and token refresh."""

    def test_missing_file(self, tmp_path):
        provider = GoogleCredentialProvider(str(tmp_path / "missing.json"))

        assert not provider.is_configured()
        with pytest.raises(ProviderNotConfigured):
            provider._load()

    @pytest.mark.asyncio
    async def test_refreshes_once_and_caches(self, tmp_path):
        key_file = tmp_path / "vertex.json"
        key_file.write_text("{}")

        credentials = MagicMock()
        credentials.valid = False
        credentials.token = None

        def refresh(request):
            credentials.valid = True
            credentials.token = "ya29.fresh"

        credentials.refresh.side_effect = refresh

        with patch(
            "core.credentials.service_account.Credentials.from_service_account_file",
            return_value=credentials,
        ) as from_file:
            provider = GoogleCredentialProvider(str(key_file))
            assert provider.is_configured()

            first = await provider.get_access_token()
            second = await provider.get_access_token()

        assert first == second == "ya29.fresh"
        from_file.assert_called_once()
        assert from_file.call_args.kwargs["scopes"] == ["https://www.googleapis.com/auth/cloud-platform"]
        credentials.refresh.assert_called_once()

    @pytest.mark.asyncio
    async def test_malformed_file_is_not_configured(self, tmp_path):
        key_file = tmp_path / "vertex.json"
        key_file.write_text("{not json")
        provider = GoogleCredentialProvider(str(key_file))

        assert not provider.is_configured()
        with pytest.raises(ProviderNotConfigured):
            await provider.get_access_token()

    @pytest.mark.asyncio
    async def test_refresh_failure_is_provider_error(self, tmp_path):
        key_file = tmp_path / "vertex.json"
        key_file.write_text("{}")

        credentials = MagicMock()
        credentials.valid = False
        credentials.token = None
        credentials.refresh.side_effect = RefreshError("invalid_grant")

        with patch(
            "core.credentials.service_account.Credentials.from_service_account_file",
            return_value=credentials,
        ):
            provider = GoogleCredentialProvider(str(key_file))
            with pytest.raises(ProviderError) as exc_info:
                await provider.get_access_token()

        assert exc_info.value.status_code is None
        assert "invalid_grant" in str(exc_info.value)
