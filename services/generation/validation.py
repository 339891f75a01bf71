"""
Request validation and normalization.

Turns raw client input (a JSON body, CLI arguments) into a GenerationRequest
or raises a ValidationError subclass. Validation is pure: it never touches the
network or any shared state, so the same input always gives the same result.
"""

import base64
import binascii
import re
from enum import Enum
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from core.errors import (
    InvalidAspectRatio,
    InvalidDuration,
    InvalidImageFormat,
    InvalidModel,
    InvalidSize,
    MissingPrompt,
    ValidationError,
)

from .models import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_IMAGE_MIME_TYPE,
    DEFAULT_VIDEO_MODEL,
    DEFAULT_VIDEO_SECONDS,
    DEFAULT_VIDEO_SIZE,
    MAX_VIDEO_SECONDS,
    MIN_VIDEO_SECONDS,
    AspectRatio,
    GenerationMode,
    GenerationRequest,
    ReferenceImage,
    VideoModel,
    VideoSize,
)

DATA_URI_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)
DATA_URI_PREFIX = re.compile(r"^data:[^;]+;base64,")

DEFAULT_MAX_REFERENCE_IMAGE_BYTES = 50 * 1024 * 1024

E = TypeVar("E", bound=Enum)


def decode_reference_image(
    value: Any,
    max_bytes: Optional[int] = DEFAULT_MAX_REFERENCE_IMAGE_BYTES,
) -> ReferenceImage:
    """
    Decode a reference image from a data URI or a bare base64 string.

    Accepted forms:
        data:image/jpeg;base64,<payload>   -> mime from the URI
        data:<anything>;base64,<payload>   -> prefix stripped, mime image/png
        <payload>                          -> mime image/png

    Raises:
        InvalidImageFormat: non-string input, malformed base64, empty or oversized payload
    """
    if not isinstance(value, str):
        raise InvalidImageFormat()

    mime_type = DEFAULT_IMAGE_MIME_TYPE
    payload = value.strip()

    if payload.startswith("data:"):
        match = DATA_URI_PATTERN.match(payload)
        if match:
            mime_type = match.group(1).strip() or DEFAULT_IMAGE_MIME_TYPE
            payload = match.group(2)
        else:
            payload = DATA_URI_PREFIX.sub("", payload)

    if not payload:
        raise InvalidImageFormat("Invalid image format. Image payload is empty.")

    # Rough pre-check so huge strings are rejected before decoding
    if max_bytes is not None and len(payload) * 3 // 4 > max_bytes + 3:
        raise InvalidImageFormat(_too_large_message(max_bytes))

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImageFormat("Invalid image format. Image payload is not valid base64.")

    if not data:
        raise InvalidImageFormat("Invalid image format. Image payload is empty.")
    if max_bytes is not None and len(data) > max_bytes:
        raise InvalidImageFormat(_too_large_message(max_bytes))

    return ReferenceImage(data=data, mime_type=mime_type)


def _too_large_message(max_bytes: int) -> str:
    return f"Image file is too large. Please use an image smaller than {max_bytes // (1024 * 1024)}MB."


def _choice(value: Any, enum_type: Type[E], default: E, error: Type[ValidationError], label: str) -> E:
    if value is None or value == "":
        return default
    allowed = ", ".join(member.value for member in enum_type)
    if not isinstance(value, str):
        raise error(f"Invalid {label}. Must be one of: {allowed}")
    try:
        return enum_type(value.strip())
    except ValueError:
        raise error(f"Invalid {label}. Must be one of: {allowed}")


def _prompt(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MissingPrompt()
    return value.strip()


def _seconds(value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_VIDEO_SECONDS

    message = f"Invalid seconds. Must be an integer between {MIN_VIDEO_SECONDS} and {MAX_VIDEO_SECONDS}."

    # bool is an int subclass; true/false is not a duration
    if isinstance(value, bool):
        raise InvalidDuration(message)

    if isinstance(value, int):
        seconds = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidDuration(message)
        seconds = int(value)
    elif isinstance(value, str) and re.fullmatch(r"\s*\d+\s*", value):
        seconds = int(value)
    else:
        raise InvalidDuration(message)

    if not MIN_VIDEO_SECONDS <= seconds <= MAX_VIDEO_SECONDS:
        raise InvalidDuration(message)
    return seconds


def _reference_image(value: Any, max_bytes: Optional[int]) -> Optional[ReferenceImage]:
    if value is None or value == "":
        return None
    return decode_reference_image(value, max_bytes=max_bytes)


def validate_request(
    raw: Mapping[str, Any],
    mode: Union[GenerationMode, str],
    max_image_bytes: Optional[int] = DEFAULT_MAX_REFERENCE_IMAGE_BYTES,
) -> GenerationRequest:
    """
    Validate raw client input for the given mode.

    Image fields: prompt, aspectRatio, image
    Video fields: prompt, model, size, seconds, image

    Returns:
        A normalized GenerationRequest

    Raises:
        ValidationError (or a subclass) describing the first problem found
    """
    try:
        mode = GenerationMode(mode)
    except ValueError:
        raise ValidationError(f"Invalid mode: {mode!r}. Must be 'image' or 'video'.")

    if not isinstance(raw, Mapping):
        raise ValidationError("Request body must be a JSON object.")

    prompt = _prompt(raw.get("prompt"))

    if mode == GenerationMode.IMAGE:
        aspect_ratio = _choice(
            raw.get("aspectRatio", raw.get("aspect_ratio")),
            AspectRatio,
            DEFAULT_ASPECT_RATIO,
            InvalidAspectRatio,
            "aspectRatio",
        )
        return GenerationRequest(
            mode=mode,
            prompt=prompt,
            aspect_ratio=aspect_ratio,
            reference_image=_reference_image(raw.get("image"), max_image_bytes),
        )

    model = _choice(raw.get("model"), VideoModel, DEFAULT_VIDEO_MODEL, InvalidModel, "model")
    size = _choice(raw.get("size"), VideoSize, DEFAULT_VIDEO_SIZE, InvalidSize, "size")
    seconds = _seconds(raw.get("seconds"))

    return GenerationRequest(
        mode=mode,
        prompt=prompt,
        model=model,
        size=size,
        seconds=seconds,
        reference_image=_reference_image(raw.get("image"), max_image_bytes),
    )
