"""Image codec layer: decode raster bytes, report intrinsic metadata, encode."""

import base64
import binascii
import io
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import TAGS

from .error_handling import with_error_handling
from .exceptions import DecodeError, TransformError

ORIENTATION_TAG = 0x0112
GPS_IFD_TAG = 0x8825

FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "TIFF": "image/tiff",
}

# Formats whose Pillow writers accept an ``exif=`` block
EXIF_CAPABLE_FORMATS = ("JPEG", "PNG", "WEBP", "TIFF")


@dataclass
class RawImage:
    """A decoded image plus the intrinsic metadata read from its container."""

    image: Image.Image
    format: str
    width: int
    height: int
    orientation: Optional[int]
    channels: int
    icc_profile: Optional[bytes]
    dpi: Optional[float]
    exif: Image.Exif
    byte_size: int = 0

    @property
    def has_alpha(self) -> bool:
        return self.image.mode in ("RGBA", "LA", "PA") or (
            "transparency" in self.image.info
        )


def _read_dpi(image: Image.Image) -> Optional[float]:
    dpi = image.info.get("dpi")
    if not dpi:
        return None
    try:
        return float(dpi[0])
    except (TypeError, ValueError, IndexError):
        return None


@with_error_handling
def decode(data: bytes) -> RawImage:
    """Decode raw bytes into a RawImage.

    Raises:
        DecodeError: If the bytes are empty, corrupt or not a supported image.
    """
    if not data:
        raise DecodeError("Empty image data")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError):
        raise
    except (OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"Corrupt image data: {e}") from e

    exif = image.getexif()
    orientation = exif.get(ORIENTATION_TAG)

    return RawImage(
        image=image,
        format=(image.format or "PNG").upper(),
        width=image.width,
        height=image.height,
        orientation=int(orientation) if orientation else None,
        channels=len(image.getbands()),
        icc_profile=image.info.get("icc_profile") or None,
        dpi=_read_dpi(image),
        exif=exif,
        byte_size=len(data),
    )


def _flatten_for_jpeg(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "L", "CMYK"):
        return image
    if image.mode == "P":
        image = image.convert("RGBA")
    if image.mode in ("RGBA", "LA"):
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image.convert("RGBA"), mask=image.convert("RGBA").split()[-1])
        return background
    return image.convert("RGB")


@with_error_handling
def encode(
    image: Image.Image,
    format: str,
    quality: int = 85,
    exif: Optional[Image.Exif] = None,
    icc_profile: Optional[bytes] = None,
    progressive: bool = False,
    optimize: bool = False,
    compress_level: Optional[int] = None,
) -> bytes:
    """Encode an image, writing exactly the metadata passed in and nothing else."""
    format = format.upper()
    if format not in FORMAT_MIME_TYPES:
        raise TransformError(f"Unsupported output format: {format}")

    # Drop container metadata carried over from decode (exif, xmp, text chunks)
    clean = image.copy()
    transparency = image.info.get("transparency")
    clean.info = {}
    # tRNS is pixel data for palette, grey and RGB images, not metadata
    if transparency is not None and clean.mode in ("P", "L", "RGB"):
        clean.info["transparency"] = transparency

    save_kwargs: Dict[str, Any] = {"format": format, "icc_profile": icc_profile}

    if format in EXIF_CAPABLE_FORMATS:
        save_kwargs["exif"] = exif.tobytes() if exif is not None and len(exif) else b""

    if format == "JPEG":
        clean = _flatten_for_jpeg(clean)
        save_kwargs.update(quality=quality, progressive=progressive, optimize=optimize)
    elif format == "PNG":
        save_kwargs["optimize"] = optimize
        if compress_level is not None:
            save_kwargs["compress_level"] = compress_level
    elif format == "WEBP":
        if clean.mode not in ("RGB", "RGBA"):
            keep_alpha = "A" in clean.getbands() or "transparency" in clean.info
            clean = clean.convert("RGBA" if keep_alpha else "RGB")
        save_kwargs.update(quality=quality, method=6 if optimize else 4)
    elif format == "GIF":
        save_kwargs.pop("icc_profile")
        if clean.mode not in ("P", "L"):
            clean = clean.convert("P", palette=Image.Palette.ADAPTIVE)

    output = io.BytesIO()
    clean.save(output, **save_kwargs)
    return output.getvalue()


def mime_type_for(format: str) -> str:
    return FORMAT_MIME_TYPES.get(format.upper(), "application/octet-stream")


def to_data_uri(data: bytes, format: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type_for(format)};base64,{encoded}"


def is_data_uri(src: str) -> bool:
    return src.startswith("data:")


def decode_base64_payload(payload: str) -> bytes:
    """Decode a data URI or bare base64 string into bytes."""
    if is_data_uri(payload):
        header, sep, payload = payload.partition(",")
        if not sep or not payload or ";base64" not in header:
            raise DecodeError("Invalid base64 image data")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 image data: {e}") from e


def extract_metadata(
    source: Union[bytes, RawImage], include_gps: bool = False
) -> Dict[str, Any]:
    """
    Describe an image: intrinsic properties plus its readable EXIF tags.

    Args:
        source: Encoded bytes or an already decoded RawImage
        include_gps: Report the GPS IFD (skipped by default for privacy)

    Returns:
        Dictionary containing image info and EXIF tags keyed by tag name
    """
    raw = source if isinstance(source, RawImage) else decode(source)

    info: Dict[str, Any] = {
        "width": raw.width,
        "height": raw.height,
        "format": raw.format,
        "mode": raw.image.mode,
        "channels": raw.channels,
        "orientation": raw.orientation,
        "has_icc_profile": raw.icc_profile is not None,
    }

    exif_tags: Dict[str, Any] = {}
    for tag_id, value in raw.exif.items():
        tag = TAGS.get(tag_id, tag_id)
        if tag_id == GPS_IFD_TAG and not include_gps:
            continue

        processed_value: Union[str, int, float]
        if isinstance(value, bytes):
            try:
                processed_value = value.decode("utf-8").rstrip("\x00")
            except UnicodeDecodeError:
                processed_value = str(value)
        elif isinstance(value, (str, int, float)):
            processed_value = value
        elif isinstance(value, Iterable):
            processed_value = str(value)
        else:
            processed_value = str(value)

        exif_tags[str(tag)] = processed_value

    info["exif"] = exif_tags
    return info
