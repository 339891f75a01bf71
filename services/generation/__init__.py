"""
Generation Request Handling

Validation of raw client input and dispatch of validated requests to the
image or video provider.
"""

from .dispatcher import GenerationDispatcher, LoggingRequestLog, RequestLogEntry
from .models import (
    AspectRatio,
    GenerationEnvelope,
    GenerationMode,
    GenerationRequest,
    GenerationType,
    ReferenceImage,
    VideoModel,
    VideoSize,
)
from .validation import decode_reference_image, validate_request

__all__ = [
    "AspectRatio",
    "GenerationDispatcher",
    "GenerationEnvelope",
    "GenerationMode",
    "GenerationRequest",
    "GenerationType",
    "LoggingRequestLog",
    "ReferenceImage",
    "RequestLogEntry",
    "VideoModel",
    "VideoSize",
    "decode_reference_image",
    "validate_request",
]
