"""Custom exceptions for the WordPress image pipeline."""

from __future__ import annotations

from typing import Optional


class ImagesPipelineError(Exception):
    """Base exception for all image pipeline errors."""


class ConfigurationError(ImagesPipelineError):
    """Error raised for invalid configuration options."""


class ValidationError(ImagesPipelineError):
    """Error raised for bad or missing request fields (surfaced as HTTP 400)."""


class InvalidImageIdError(ValidationError):
    """Error raised when an image identifier does not follow a known convention."""

    def __init__(self, image_id: str, reason: str = "unrecognised format"):
        super().__init__(f"Invalid image identifier '{image_id}': {reason}")
        self.image_id = image_id


class SourceNotFoundError(ImagesPipelineError):
    """Error raised when an image's owning record, locator or bytes cannot be found."""


class TransformError(ImagesPipelineError):
    """Error raised when decoding, transforming or encoding an image fails."""


class DecodeError(TransformError):
    """Error raised for corrupt or unsupported image input."""


class SinkError(ImagesPipelineError):
    """Error raised when a transformed image cannot be persisted."""


class ConcurrentUpdateError(SinkError):
    """Error raised when a content record changed between read and write."""

    def __init__(
        self, content_id: str, expected_version: int, actual_version: Optional[int]
    ):
        super().__init__(
            f"Content {content_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.content_id = content_id
        self.expected_version = expected_version
        self.actual_version = actual_version
