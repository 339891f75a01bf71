"""
Request and response types shared by the generation services.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class GenerationMode(str, Enum):
    """Which provider path a request takes."""
    IMAGE = "image"
    VIDEO = "video"


class GenerationType(str, Enum):
    """Client-facing label derived from mode and reference image presence."""
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_TO_IMAGE = "image-to-image"
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"

    @classmethod
    def for_request(cls, mode: GenerationMode, has_reference_image: bool) -> "GenerationType":
        if mode == GenerationMode.IMAGE:
            return cls.IMAGE_TO_IMAGE if has_reference_image else cls.TEXT_TO_IMAGE
        return cls.IMAGE_TO_VIDEO if has_reference_image else cls.TEXT_TO_VIDEO


class AspectRatio(str, Enum):
    """Aspect ratios accepted by the image path."""
    SQUARE = "1:1"
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    CLASSIC = "4:3"
    CLASSIC_PORTRAIT = "3:4"


class VideoModel(str, Enum):
    """Available Sora models."""
    SORA_2 = "sora-2"
    SORA_2_PRO = "sora-2-pro"


class VideoSize(str, Enum):
    """Output resolutions accepted by the video path."""
    HD_LANDSCAPE = "1280x720"
    FULL_HD_LANDSCAPE = "1920x1080"
    FULL_HD_PORTRAIT = "1080x1920"
    HD_PORTRAIT = "720x1280"


DEFAULT_ASPECT_RATIO = AspectRatio.SQUARE
DEFAULT_VIDEO_MODEL = VideoModel.SORA_2
DEFAULT_VIDEO_SIZE = VideoSize.HD_LANDSCAPE
DEFAULT_VIDEO_SECONDS = 8
MIN_VIDEO_SECONDS = 1
MAX_VIDEO_SECONDS = 60

DEFAULT_IMAGE_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class ReferenceImage:
    """Decoded reference image supplied by the client."""
    data: bytes = field(repr=False)
    mime_type: str = DEFAULT_IMAGE_MIME_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class GenerationRequest:
    """A validated, normalized generation request."""
    mode: GenerationMode
    prompt: str
    aspect_ratio: Optional[AspectRatio] = None
    model: Optional[VideoModel] = None
    size: Optional[VideoSize] = None
    seconds: Optional[int] = None
    reference_image: Optional[ReferenceImage] = None

    @property
    def generation_type(self) -> GenerationType:
        return GenerationType.for_request(self.mode, self.reference_image is not None)

    def echoed_parameters(self) -> dict[str, Any]:
        """Parameters echoed back to the client in the response envelope."""
        if self.mode == GenerationMode.IMAGE:
            return {
                "prompt": self.prompt,
                "aspectRatio": self.aspect_ratio.value if self.aspect_ratio else None,
            }
        return {
            "prompt": self.prompt,
            "model": self.model.value if self.model else None,
            "size": self.size.value if self.size else None,
            "seconds": self.seconds,
        }


@dataclass(frozen=True)
class GenerationEnvelope:
    """Uniform response for every dispatched request."""
    generation_type: GenerationType
    parameters: dict[str, Any]
    artifacts: tuple[str, ...] = ()
    job: Optional[Any] = None  # VideoJob for the video path
    success: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "generationType": self.generation_type.value,
            "type": self.generation_type.value,
            **self.parameters,
        }
        if self.job is not None:
            job = self.job.to_dict()
            payload["jobId"] = job["id"]
            payload["status"] = job["status"]
            payload["job"] = job
        else:
            payload["images"] = list(self.artifacts)
            payload["artifacts"] = list(self.artifacts)
        return payload
