"""
Image Generation Service

Synchronous text-to-image and image-to-image generation through Gemini on
Vertex AI. Images come back inline as data URIs.
"""

from .client import (
    ImageArtifact,
    ImageGenerationClient,
    build_instruction,
    recognize_inline_data,
    recognize_legacy_image,
)

__all__ = [
    "ImageArtifact",
    "ImageGenerationClient",
    "build_instruction",
    "recognize_inline_data",
    "recognize_legacy_image",
]
