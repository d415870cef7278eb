"""Shared data models for the WordPress image pipeline."""

import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ConfigurationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Action(str, Enum):
    """What happens to an image's metadata (and pixels, for scramble)."""

    ADD = "add"
    STRIP = "strip"
    UPDATE = "update"
    SCRAMBLE = "scramble"


class ScrambleType(str, Enum):
    PIXEL_SHIFT = "pixel-shift"
    WATERMARK = "watermark"
    BLUR_REGIONS = "blur-regions"
    COLOR_SHIFT = "color-shift"
    NOISE = "noise"


class WatermarkPosition(str, Enum):
    CENTER = "center"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


class ProcessOptions(BaseModel):
    """Options applied uniformly to every image of one batch."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: Action
    copyright: Optional[str] = None
    author: Optional[str] = None
    remove_gps: bool = Field(default=False, alias="removeGPS")
    optimize: bool = False
    max_width: Optional[int] = Field(default=None, alias="maxWidth", gt=0)
    quality: int = Field(default=85, ge=1, le=100)
    keep_color_profile: bool = Field(default=False, alias="keepColorProfile")
    scramble_type: Optional[ScrambleType] = Field(default=None, alias="scrambleType")
    scramble_intensity: int = Field(
        default=50, alias="scrambleIntensity", ge=0, le=100
    )
    watermark_text: str = Field(default="CONFIDENTIAL", alias="watermarkText")
    watermark_position: WatermarkPosition = Field(
        default=WatermarkPosition.CENTER, alias="watermarkPosition"
    )

    @property
    def writes_metadata(self) -> bool:
        return self.action in (Action.ADD, Action.UPDATE)


class WebsiteRecord(BaseModel):
    """A connected WordPress site and its REST credentials."""

    id: str
    user_id: str
    name: str = ""
    url: str = ""
    wp_username: Optional[str] = None
    wp_application_name: Optional[str] = None
    wp_application_password: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.wp_application_password)

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


class ContentRecord(BaseModel):
    """A locally stored content item whose HTML body may embed images."""

    id: str
    website_id: Optional[str] = None
    user_id: Optional[str] = None
    title: str = ""
    body: str = ""
    status: str = "draft"
    wordpress_post_id: Optional[str] = None
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MetadataAuditRecord(BaseModel):
    """One row of the image metadata status table, upserted by image id."""

    image_id: str
    website_id: Optional[str] = None
    action: Action
    has_metadata: bool = False
    copyright: Optional[str] = None
    author: Optional[str] = None
    processed: bool = False
    error: Optional[str] = None
    processed_at: datetime = Field(default_factory=utcnow)


class ProcessingResult(BaseModel):
    """Result of processing a single batch item."""

    image_id: str
    success: bool = False
    error: str = ""
    message: str = ""
    destination: str = ""
    published: bool = False
    new_url: Optional[str] = None
    processing_time: float = 0.0


class ItemSuccess(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_id: str = Field(alias="imageId")
    processing_time: str = Field(alias="processingTime")
    message: str
    action: Action
    scramble_type: Optional[ScrambleType] = Field(default=None, alias="scrambleType")
    destination: str
    published: bool = False
    new_url: Optional[str] = Field(default=None, alias="newUrl")


class ItemError(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_id: str = Field(alias="imageId")
    message: str


class BatchResults(BaseModel):
    success: List[ItemSuccess] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Aggregate outcome of one batch call."""

    model_config = ConfigDict(populate_by_name=True)

    processed: int
    failed: int
    total: int
    success_rate: str = Field(alias="successRate")
    message: str = ""
    processing_time: Optional[str] = Field(default=None, alias="processingTime")
    results: BatchResults = Field(default_factory=BatchResults)
    errors: List[ItemError] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ImageSource(str, Enum):
    WORDPRESS_MEDIA = "wordpress_media"
    WORDPRESS_POST = "wordpress_post"
    DATABASE_CONTENT = "database_content"


class CatalogImage(BaseModel):
    """One processable image as listed for the image manager."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    content_id: str = Field(alias="contentId")
    content_title: str = Field(alias="contentTitle")
    website_id: Optional[str] = Field(default=None, alias="websiteId")
    website_name: str = Field(default="Unknown", alias="websiteName")
    has_metadata: bool = Field(default=False, alias="hasMetadata")
    metadata_details: Dict[str, Any] = Field(
        default_factory=dict, alias="metadataDetails"
    )
    source: ImageSource


class SingleImageResult(BaseModel):
    """Outcome of processing one image supplied inline."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: str
    format: str
    width: int
    height: int
    original_size: int = Field(alias="originalSize")
    processed_size: int = Field(alias="processedSize")
    compression_ratio: float = Field(alias="compressionRatio")
    metadata_added: bool = Field(alias="metadataAdded")

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _env_number(name: str, default: Any, cast: Any) -> Any:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


class PipelineSettings(BaseModel):
    """Runtime configuration for the pipeline and its HTTP collaborators."""

    http_timeout: float = Field(default=30.0, gt=0)
    http_max_attempts: int = Field(default=1, ge=1)
    http_retry_delay: float = Field(default=1.0, ge=0)
    max_workers: int = Field(default=1, ge=1)
    environment: str = "production"
    software_tag: str = "AI Content Manager"
    default_username: str = "admin"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Environment Variables:
            HTTP_TIMEOUT_S: Timeout in seconds for every external HTTP call
            HTTP_MAX_ATTEMPTS: Attempts per HTTP call (1 disables retry)
            HTTP_RETRY_DELAY_S: Initial delay between attempts
            PIPELINE_MAX_WORKERS: Worker threads per batch (1 is sequential)
            APP_ENV: "development" exposes stack traces in error responses
            PIPELINE_SOFTWARE_TAG: EXIF Software value written by add/update
            WP_DEFAULT_USERNAME: WordPress user when only a password is stored
        """
        try:
            return cls(
                http_timeout=_env_number("HTTP_TIMEOUT_S", 30.0, float),
                http_max_attempts=_env_number("HTTP_MAX_ATTEMPTS", 1, int),
                http_retry_delay=_env_number("HTTP_RETRY_DELAY_S", 1.0, float),
                max_workers=_env_number("PIPELINE_MAX_WORKERS", 1, int),
                environment=os.getenv("APP_ENV", "production"),
                software_tag=os.getenv("PIPELINE_SOFTWARE_TAG", "AI Content Manager"),
                default_username=os.getenv("WP_DEFAULT_USERNAME", "admin"),
            )
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            raise ConfigurationError(str(e)) from e
