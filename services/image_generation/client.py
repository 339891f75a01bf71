"""
Gemini Image Generation Client (Vertex AI)

Synchronous image path of the relay:
- Text-to-image: prompt only
- Image-to-image: reference image + prompt (image part first)

The provider has emitted image bytes under two different part shapes over
time, so responses are parsed with an ordered list of recognizers. Adding a
new shape means appending a recognizer, not editing the parser.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Union

import httpx

from core.config import get_config
from core.errors import NoArtifactsProduced, ProviderError, ProviderNotConfigured
from services.generation.models import DEFAULT_IMAGE_MIME_TYPE, AspectRatio, ReferenceImage

logger = logging.getLogger(__name__)

PROVIDER = "vertex-ai"

# Applied to every request, both modes
GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 8192,
}


@dataclass(frozen=True)
class ImageArtifact:
    """One image returned by the provider, still base64-encoded."""
    data: str
    mime_type: str = DEFAULT_IMAGE_MIME_TYPE

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


ArtifactRecognizer = Callable[[dict], Optional[ImageArtifact]]


def recognize_inline_data(part: dict) -> Optional[ImageArtifact]:
    """Current shape: {"inlineData": {"mimeType": ..., "data": ...}}."""
    inline = part.get("inlineData") or part.get("inline_data")
    if isinstance(inline, dict) and inline.get("data"):
        mime_type = inline.get("mimeType") or inline.get("mime_type") or DEFAULT_IMAGE_MIME_TYPE
        return ImageArtifact(data=inline["data"], mime_type=mime_type)
    return None


def recognize_legacy_image(part: dict) -> Optional[ImageArtifact]:
    """Older shape: {"image": {"mimeType": ..., "data": ...}}."""
    image = part.get("image")
    if isinstance(image, dict) and image.get("data"):
        return ImageArtifact(data=image["data"], mime_type=image.get("mimeType") or DEFAULT_IMAGE_MIME_TYPE)
    return None


DEFAULT_RECOGNIZERS: tuple[ArtifactRecognizer, ...] = (
    recognize_inline_data,
    recognize_legacy_image,
)


def build_instruction(prompt: str, aspect_ratio: str, image_to_image: bool) -> str:
    """Natural-language instruction sent as the text part."""
    if image_to_image:
        return (
            f"Transform or modify this image based on the following description: {prompt}. "
            f"The output image should have an aspect ratio of {aspect_ratio}."
        )
    return (
        f"Generate an image with the following description: {prompt}. "
        f"The image should have an aspect ratio of {aspect_ratio}."
    )


def _response_parts(data: Any) -> list[dict]:
    parts: list[dict] = []
    if not isinstance(data, dict):
        return parts
    for candidate in data.get("candidates") or []:
        content = (candidate or {}).get("content") or {}
        parts.extend(p for p in content.get("parts") or [] if isinstance(p, dict))
    return parts


class ImageGenerationClient:
    """
    Client for Gemini image generation on Vertex AI.

    Usage:
        client = ImageGenerationClient()

        images = await client.generate_image(
            prompt="a fatbike on a beach",
            aspect_ratio="16:9",
        )
        # ["data:image/png;base64,..."]
    """

    def __init__(
        self,
        config: Optional[Any] = None,
        token_provider: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        recognizers: Sequence[ArtifactRecognizer] = DEFAULT_RECOGNIZERS,
    ):
        """
        Args:
            config: Optional config override
            token_provider: Object with async get_access_token() and is_configured().
                Defaults to the process-wide Google credential provider.
            http_client: Optional preconfigured httpx client (tests inject a mock transport)
            recognizers: Ordered artifact recognizers; first match per part wins
        """
        self.config = config or get_config()
        self._token_provider = token_provider
        self._http_client = http_client
        self.recognizers = tuple(recognizers)

    @property
    def token_provider(self):
        if self._token_provider is None:
            from core.credentials import get_credential_provider

            self._token_provider = get_credential_provider()
        return self._token_provider

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.api.image_timeout_seconds)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def is_configured(self) -> bool:
        """True when project id and credentials are both available."""
        return bool(self.config.api.google_project_id) and self.token_provider.is_configured()

    def build_request_body(
        self,
        prompt: str,
        aspect_ratio: str,
        reference_image: Optional[ReferenceImage] = None,
    ) -> dict:
        """Build the generateContent body. Image part (if any) precedes the text part."""
        parts: list[dict] = []

        if reference_image is not None:
            parts.append({
                "inlineData": {
                    "mimeType": reference_image.mime_type,
                    "data": reference_image.to_base64(),
                }
            })

        parts.append({"text": build_instruction(prompt, aspect_ratio, reference_image is not None)})

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": dict(GENERATION_CONFIG),
        }

    def extract_artifacts(self, data: Any) -> list[ImageArtifact]:
        """Run every response part through the recognizers."""
        artifacts = []
        for part in _response_parts(data):
            for recognizer in self.recognizers:
                artifact = recognizer(part)
                if artifact is not None:
                    artifacts.append(artifact)
                    break
        return artifacts

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: Union[AspectRatio, str] = AspectRatio.SQUARE,
        reference_image: Optional[ReferenceImage] = None,
    ) -> list[str]:
        """
        Generate images from a prompt, optionally transforming a reference image.

        Returns:
            Images as data URIs, in provider order

        Raises:
            ProviderNotConfigured: project id or credentials missing
            ProviderError: non-success HTTP response or transport failure
            NoArtifactsProduced: provider answered without any image
        """
        ratio = aspect_ratio.value if isinstance(aspect_ratio, AspectRatio) else str(aspect_ratio)

        if not self.config.api.google_project_id:
            raise ProviderNotConfigured(PROVIDER, "PROJECT_ID is not set in environment variables")

        access_token = await self.token_provider.get_access_token()

        body = self.build_request_body(prompt, ratio, reference_image)
        mode = "image-to-image" if reference_image is not None else "text-to-image"
        logger.info(f"Gemini request: model={self.config.api.gemini_image_model}, mode={mode}, prompt={prompt[:50]}...")

        client = await self._get_client()
        try:
            response = await client.post(
                self.config.api.vertex_endpoint,
                json=body,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            raise ProviderError(PROVIDER, None, f"timeout: {type(e).__name__}") from e
        except httpx.RequestError as e:
            raise ProviderError(PROVIDER, None, f"request failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            logger.error(f"Gemini API error: {response.status_code} - {response.text[:500]}")
            raise ProviderError(PROVIDER, response.status_code, response.text)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ProviderError(PROVIDER, response.status_code, f"invalid JSON: {response.text[:200]}") from e

        artifacts = self.extract_artifacts(data)

        if not artifacts:
            text_parts = [p["text"] for p in _response_parts(data) if isinstance(p.get("text"), str)]
            provider_text = text_parts[0] if text_parts else None
            if provider_text:
                logger.warning(f"Received text response instead of image: {provider_text[:300]}")
            raise NoArtifactsProduced(PROVIDER, provider_text)

        logger.info(f"Gemini returned {len(artifacts)} image(s)")
        return [artifact.to_data_uri() for artifact in artifacts]
