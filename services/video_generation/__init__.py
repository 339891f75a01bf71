"""
Video Generation Service

Asynchronous Sora job path:
- VideoGenerationClient: submit, poll once, retrieve artifacts
- JobPoller: drive a job to a terminal state with a bounded attempt budget
"""

from .client import (
    ArtifactVariant,
    AttachmentSubmission,
    StructuredSubmission,
    SubmissionStrategy,
    VideoArtifact,
    VideoGenerationClient,
    VideoJob,
    VideoJobStatus,
    select_submission_strategy,
)
from .poller import JobPoller

__all__ = [
    "ArtifactVariant",
    "AttachmentSubmission",
    "StructuredSubmission",
    "SubmissionStrategy",
    "VideoArtifact",
    "VideoGenerationClient",
    "VideoJob",
    "VideoJobStatus",
    "select_submission_strategy",
    "JobPoller",
]
