"""Metadata transform engine: strip / add / update / scramble, optimize, sRGB."""

import io
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from PIL import Image, ImageCms

from .codec import RawImage, decode, encode, mime_type_for
from .error_handling import with_error_handling
from .logging_config import get_logger
from .metadata import build_output_exif
from .models import Action, ProcessOptions
from .scramble import apply_scramble

# Pillow reports multi-picture JPEGs from phones as MPO
PASSTHROUGH_FORMATS = {
    "JPEG": "JPEG",
    "MPO": "JPEG",
    "PNG": "PNG",
    "WEBP": "WEBP",
    "GIF": "GIF",
    "TIFF": "TIFF",
}
STANDARD_DPI = 72

logger = get_logger("transforms")


@dataclass
class TransformOutput:
    """An encoded result of the engine."""

    data: bytes
    format: str
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return mime_type_for(self.format)

    @property
    def extension(self) -> str:
        return "jpg" if self.format == "JPEG" else self.format.lower()


def default_output_format(source_format: str) -> str:
    return PASSTHROUGH_FORMATS.get(source_format.upper(), "PNG")


def resize_to_max_width(image: Image.Image, max_width: Optional[int]) -> Image.Image:
    """Shrink to ``max_width`` keeping the aspect ratio; never enlarges."""
    if not max_width or image.width <= max_width:
        return image
    new_height = max(1, round(image.height * max_width / image.width))
    return image.resize((max_width, new_height), Image.Resampling.LANCZOS)


def choose_optimized_encoding(raw: RawImage) -> Tuple[str, Dict[str, Any]]:
    """
    Pick the output format and encoder settings for an optimize pass.

    Opaque PNGs above screen density become progressive JPEG; other PNGs stay
    PNG at maximum compression; WebP stays WebP; everything else becomes
    progressive JPEG.
    """
    if raw.format == "PNG":
        if not raw.has_alpha and raw.dpi is not None and raw.dpi > STANDARD_DPI:
            return "JPEG", {"progressive": True, "optimize": True}
        return "PNG", {"optimize": True, "compress_level": 9}
    if raw.format == "WEBP":
        return "WEBP", {"optimize": True}
    return "JPEG", {"progressive": True, "optimize": True}


def _normalize_mode(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA"):
        return image
    if image.mode in ("LA", "PA", "RGBa", "La") or "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB")


def convert_to_srgb(image: Image.Image, icc_profile: Optional[bytes]) -> Image.Image:
    """Force the image into sRGB, honouring an embedded ICC profile when present."""
    if icc_profile:
        try:
            source_profile = ImageCms.ImageCmsProfile(io.BytesIO(icc_profile))
            target_profile = ImageCms.createProfile("sRGB")
            if image.mode == "P":
                image = _normalize_mode(image)
            output_mode = "RGBA" if image.mode == "RGBA" else "RGB"
            return ImageCms.profileToProfile(
                image, source_profile, target_profile, outputMode=output_mode
            )
        except (ImageCms.PyCMSError, ValueError, OSError) as e:
            logger.warning(f"Embedded ICC profile unusable, converting mode only: {e}")
    return _normalize_mode(image)


class ImageTransformService:
    """Pure image transform service with no I/O dependencies."""

    def __init__(
        self,
        software_tag: str = "AI Content Manager",
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._software_tag = software_tag
        self._rng = rng
        self._clock = clock

    @with_error_handling
    def transform(self, data: bytes, options: ProcessOptions) -> TransformOutput:
        """
        Decode, apply ``options`` and re-encode.

        Order: scramble (if any) on the decoded pixels, metadata block,
        optional resize and format choice, then sRGB conversion last.

        Raises:
            DecodeError: If the input cannot be decoded.
            TransformError: If the transform or encoding cannot complete.
        """
        raw = decode(data)
        image = raw.image

        if options.action == Action.SCRAMBLE:
            logger.debug(
                f"Applying scramble {options.scramble_type} at "
                f"{options.scramble_intensity}% intensity"
            )
            image = apply_scramble(image, options, self._rng)

        exif = build_output_exif(raw, options, self._software_tag, self._clock())

        encode_kwargs: Dict[str, Any] = {}
        if options.optimize:
            image = resize_to_max_width(image, options.max_width)
            output_format, encode_kwargs = choose_optimized_encoding(raw)
        else:
            output_format = default_output_format(raw.format)

        icc_profile = raw.icc_profile
        if not options.keep_color_profile:
            image = convert_to_srgb(image, raw.icc_profile)
            icc_profile = None

        encoded = encode(
            image,
            output_format,
            quality=options.quality,
            exif=exif,
            icc_profile=icc_profile,
            **encode_kwargs,
        )
        return TransformOutput(
            data=encoded, format=output_format, width=image.width, height=image.height
        )
