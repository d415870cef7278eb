"""Adversarial visual transforms used by the ``scramble`` action.

Every transform takes a decoded Pillow image and returns a new one; none of
them touch metadata (the engine clears it afterwards). Randomness comes from
a numpy Generator so callers can pass a seeded one, but nothing seeds it by
default: two calls at the same intensity give different outputs.
"""

from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageEnhance, ImageFilter, ImageFont

from .error_handling import with_error_handling
from .exceptions import TransformError
from .models import ProcessOptions, ScrambleType, WatermarkPosition

MIN_BLOCK_SIZE = 4
BLOCKS_PER_SIDE = 20
WATERMARK_FILL = (255, 0, 0, 102)
WATERMARK_ANGLE = 45
BLUR_RADIUS = 20
MAX_HUE_SHIFT_DEGREES = 180
NOISE_MAX_AMPLITUDE = 50
NOISE_OPACITY = 0.5


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def _working_copy(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA", "L"):
        return image.copy()
    if image.mode in ("LA", "PA") or "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB")


def _split_alpha(image: Image.Image) -> Tuple[Image.Image, Optional[Image.Image]]:
    work = _working_copy(image)
    if work.mode == "RGBA":
        return work.convert("RGB"), work.getchannel("A")
    return work.convert("RGB"), None


def _merge_alpha(rgb: Image.Image, alpha: Optional[Image.Image]) -> Image.Image:
    if alpha is None:
        return rgb
    rgb = rgb.convert("RGBA")
    rgb.putalpha(alpha)
    return rgb


def block_size_for(width: int, height: int) -> int:
    return max(MIN_BLOCK_SIZE, min(width, height) // BLOCKS_PER_SIDE)


def pixel_shift(
    image: Image.Image, intensity: int, rng: Optional[np.random.Generator] = None
) -> Image.Image:
    """
    Swap square blocks of the image with other randomly chosen blocks.

    The image is tiled into a grid of blocks (edge remainders are left in
    place). Each block is, with probability ``intensity / 100``, swapped with
    a different block of the grid, so intensity 0 leaves the image untouched
    and intensity 100 swaps every block at least once.
    """
    rng = _rng(rng)
    work = _working_copy(image)
    pixels = np.array(work)
    height, width = pixels.shape[:2]

    block = block_size_for(width, height)
    origins = [
        (row * block, col * block)
        for row in range(height // block)
        for col in range(width // block)
    ]
    if intensity <= 0 or len(origins) < 2:
        return work

    probability = intensity / 100
    for i, (y, x) in enumerate(origins):
        if rng.random() >= probability:
            continue
        j = int(rng.integers(0, len(origins) - 1))
        if j >= i:
            j += 1
        ty, tx = origins[j]
        held = pixels[y : y + block, x : x + block].copy()
        pixels[y : y + block, x : x + block] = pixels[ty : ty + block, tx : tx + block]
        pixels[ty : ty + block, tx : tx + block] = held

    return Image.fromarray(pixels)


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def _anchor(
    position: WatermarkPosition,
    canvas: Tuple[int, int],
    stamp: Tuple[int, int],
    margin: int,
) -> Tuple[int, int]:
    cw, ch = canvas
    sw, sh = stamp
    left, right = margin, cw - sw - margin
    top, bottom = margin, ch - sh - margin
    positions = {
        WatermarkPosition.CENTER: ((cw - sw) // 2, (ch - sh) // 2),
        WatermarkPosition.TOP_LEFT: (left, top),
        WatermarkPosition.TOP_RIGHT: (right, top),
        WatermarkPosition.BOTTOM_LEFT: (left, bottom),
        WatermarkPosition.BOTTOM_RIGHT: (right, bottom),
    }
    x, y = positions.get(position, positions[WatermarkPosition.CENTER])
    return max(0, min(x, cw - sw)), max(0, min(y, ch - sh))


def watermark(
    image: Image.Image,
    text: str = "CONFIDENTIAL",
    position: WatermarkPosition = WatermarkPosition.CENTER,
) -> Image.Image:
    """Overlay diagonal, semi-transparent red text at the given anchor."""
    work = _working_copy(image)
    keep_alpha = work.mode == "RGBA"
    base = work.convert("RGBA")
    width, height = base.size

    font_size = max(1, min(width, height) // 10)
    font = _load_font(font_size)
    text = text or "CONFIDENTIAL"

    measure = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = measure.textbbox((0, 0), text, font=font)
    stamp = Image.new("RGBA", (max(1, right - left), max(1, bottom - top)), (0, 0, 0, 0))
    ImageDraw.Draw(stamp).text((-left, -top), text, font=font, fill=WATERMARK_FILL)
    stamp = stamp.rotate(WATERMARK_ANGLE, expand=True, resample=Image.Resampling.BICUBIC)

    if stamp.width > width or stamp.height > height:
        scale = min(width / stamp.width, height / stamp.height)
        stamp = stamp.resize(
            (max(1, int(stamp.width * scale)), max(1, int(stamp.height * scale))),
            Image.Resampling.LANCZOS,
        )

    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    layer.paste(stamp, _anchor(position, base.size, stamp.size, font_size // 2))
    composed = Image.alpha_composite(base, layer)
    return composed if keep_alpha else composed.convert("RGB")


def blur_regions(
    image: Image.Image, intensity: int, rng: Optional[np.random.Generator] = None
) -> Image.Image:
    """Blur ``intensity // 10`` random rectangles, each 10-30% of each side."""
    rng = _rng(rng)
    work = _working_copy(image)
    width, height = work.size

    for _ in range(intensity // 10):
        region_width = max(1, int(width * (0.1 + rng.random() * 0.2)))
        region_height = max(1, int(height * (0.1 + rng.random() * 0.2)))
        x = int(rng.integers(0, width - region_width + 1))
        y = int(rng.integers(0, height - region_height + 1))
        box = (x, y, x + region_width, y + region_height)
        work.paste(work.crop(box).filter(ImageFilter.GaussianBlur(BLUR_RADIUS)), box)

    return work


def color_shift(
    image: Image.Image, intensity: int, rng: Optional[np.random.Generator] = None
) -> Image.Image:
    """Rotate hue by up to 180 degrees, jitter saturation/brightness, add an RGB tint."""
    rng = _rng(rng)
    strength = intensity / 100
    rgb, alpha = _split_alpha(image)

    hue_offset = int(round(strength * MAX_HUE_SHIFT_DEGREES / 360 * 256)) % 256
    hue, saturation, value = rgb.convert("HSV").split()
    hue = hue.point(lambda p: (p + hue_offset) % 256)
    shifted = Image.merge("HSV", (hue, saturation, value)).convert("RGB")

    shifted = ImageEnhance.Color(shifted).enhance(1 + (rng.random() - 0.5) * strength)
    shifted = ImageEnhance.Brightness(shifted).enhance(
        1 + (rng.random() - 0.5) * strength / 2
    )

    if intensity > 0:
        tint = rng.integers(0, intensity, size=3)
        pixels = np.asarray(shifted, dtype=np.int16) + tint
        shifted = Image.fromarray(np.clip(pixels, 0, 255).astype(np.uint8))

    return _merge_alpha(shifted, alpha)


def noise(
    image: Image.Image, intensity: int, rng: Optional[np.random.Generator] = None
) -> Image.Image:
    """
    Blend a full-frame monochrome noise layer over the image in overlay mode.

    Noise is centred on mid-grey, which is neutral under overlay, so its
    amplitude (and therefore the visible damage) scales with intensity.
    """
    rng = _rng(rng)
    rgb, alpha = _split_alpha(image)
    width, height = rgb.size

    amplitude = intensity / 100 * NOISE_MAX_AMPLITUDE
    field = 128 + rng.uniform(-amplitude, amplitude, size=(height, width))
    layer = Image.fromarray(np.clip(field, 0, 255).astype(np.uint8)).convert("RGB")

    overlaid = ImageChops.overlay(rgb, layer)
    return _merge_alpha(Image.blend(rgb, overlaid, NOISE_OPACITY), alpha)


@with_error_handling
def apply_scramble(
    image: Image.Image,
    options: ProcessOptions,
    rng: Optional[np.random.Generator] = None,
) -> Image.Image:
    """Dispatch to the transform named by ``options.scramble_type``.

    Raises:
        TransformError: If no scramble type was given.
    """
    intensity = options.scramble_intensity
    scramble_type = options.scramble_type

    if scramble_type is None:
        raise TransformError("scrambleType is required when action is 'scramble'")
    if scramble_type == ScrambleType.PIXEL_SHIFT:
        return pixel_shift(image, intensity, rng)
    if scramble_type == ScrambleType.WATERMARK:
        return watermark(image, options.watermark_text, options.watermark_position)
    if scramble_type == ScrambleType.BLUR_REGIONS:
        return blur_regions(image, intensity, rng)
    if scramble_type == ScrambleType.COLOR_SHIFT:
        return color_shift(image, intensity, rng)
    if scramble_type == ScrambleType.NOISE:
        return noise(image, intensity, rng)
    raise TransformError(f"Unknown scramble type: {scramble_type}")
