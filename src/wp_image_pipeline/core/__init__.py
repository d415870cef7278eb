"""Core utilities and shared components for the WordPress image pipeline."""

from .logging_config import enable_debug_logging, get_logger, setup_logger
from .exceptions import (
    ImagesPipelineError,
    ConfigurationError,
    ValidationError,
    InvalidImageIdError,
    SourceNotFoundError,
    TransformError,
    DecodeError,
    SinkError,
    ConcurrentUpdateError,
)
from .error_handling import (
    BatchOperationContextManager,
    retry_http_operation,
    with_error_handling,
)
from .image_refs import (
    ContentRef,
    ImageRef,
    WordpressMediaRef,
    WordpressPostRef,
    format_image_id,
    parse_image_id,
)
from .models import (
    Action,
    BatchResult,
    ContentRecord,
    PipelineSettings,
    ProcessingResult,
    ProcessOptions,
    ScrambleType,
    WatermarkPosition,
    WebsiteRecord,
)

__all__ = [
    "Action",
    "BatchResult",
    "ContentRecord",
    "PipelineSettings",
    "ProcessingResult",
    "ProcessOptions",
    "ScrambleType",
    "WatermarkPosition",
    "WebsiteRecord",
    "ContentRef",
    "ImageRef",
    "WordpressMediaRef",
    "WordpressPostRef",
    "format_image_id",
    "parse_image_id",
    "setup_logger",
    "get_logger",
    "enable_debug_logging",
    "ImagesPipelineError",
    "ConfigurationError",
    "ValidationError",
    "InvalidImageIdError",
    "SourceNotFoundError",
    "TransformError",
    "DecodeError",
    "SinkError",
    "ConcurrentUpdateError",
    "BatchOperationContextManager",
    "retry_http_operation",
    "with_error_handling",
]
