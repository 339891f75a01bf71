"""
Google credential exchange for Vertex AI calls.

The service-account credential is loaded once per process and reused for
every image request. Token refresh is left to google-auth: a token is only
refreshed when the cached one is missing or expired.

Usage:
    from core.credentials import get_credential_provider

    token = await get_credential_provider().get_access_token()
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from google.auth import exceptions as google_auth_exceptions
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from core.config import get_config
from core.errors import ProviderError, ProviderNotConfigured

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class GoogleCredentialProvider:
    """Lazily loads a service account and hands out access tokens."""

    def __init__(self, credentials_path: str, scopes: Optional[list[str]] = None):
        self.credentials_path = credentials_path
        self.scopes = scopes or [CLOUD_PLATFORM_SCOPE]
        self._credentials: Optional[service_account.Credentials] = None
        self._init_lock = threading.Lock()
        self._refresh_lock = asyncio.Lock()

    def is_configured(self) -> bool:
        """True when the credentials file is present and parses as a service account."""
        if not self.credentials_path:
            return False
        try:
            self._load()
        except ProviderNotConfigured:
            return False
        return True

    def _load(self) -> service_account.Credentials:
        if self._credentials is not None:
            return self._credentials

        with self._init_lock:
            if self._credentials is None:
                path = Path(self.credentials_path).expanduser().resolve()
                if not path.exists():
                    logger.warning(f"Credentials file not found at: {path}")
                    raise ProviderNotConfigured("vertex-ai", f"credentials file not found at {path}")

                try:
                    self._credentials = service_account.Credentials.from_service_account_file(
                        str(path),
                        scopes=self.scopes,
                    )
                except (ValueError, OSError) as e:
                    logger.error(f"Unusable credentials file at {path}: {e}")
                    raise ProviderNotConfigured("vertex-ai", f"unusable credentials file at {path}: {e}") from e
                logger.info("Google service account credentials loaded")

        return self._credentials

    async def get_access_token(self) -> str:
        """Return a valid OAuth access token, refreshing in a worker thread if needed."""
        credentials = self._load()

        if credentials.valid and credentials.token:
            return credentials.token

        async with self._refresh_lock:
            if not (credentials.valid and credentials.token):
                logger.debug("Refreshing Google access token")
                try:
                    await asyncio.to_thread(credentials.refresh, GoogleAuthRequest())
                except google_auth_exceptions.GoogleAuthError as e:
                    logger.error(f"Google token refresh failed: {e}")
                    raise ProviderError("vertex-ai", None, f"token refresh failed: {e}") from e

        return credentials.token


# Process-wide provider instance
_provider: Optional[GoogleCredentialProvider] = None
_provider_lock = threading.Lock()


def get_credential_provider() -> GoogleCredentialProvider:
    """Get the process-wide credential provider, creating it on first use."""
    global _provider
    if _provider is None:
        with _provider_lock:
            if _provider is None:
                _provider = GoogleCredentialProvider(get_config().api.google_credentials_path)
    return _provider
