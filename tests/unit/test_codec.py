"""Unit tests for the image codec layer."""

import base64
import io

import pytest
from PIL import Image

from wp_image_pipeline.core.codec import (
    GPS_IFD_TAG,
    ORIENTATION_TAG,
    decode,
    decode_base64_payload,
    encode,
    extract_metadata,
    is_data_uri,
    mime_type_for,
    to_data_uri,
)
from wp_image_pipeline.core.exceptions import DecodeError, TransformError
from wp_image_pipeline.core.metadata import orientation_only
from wp_image_pipeline.testing.fakes import create_test_image


def palette_png_with_transparency():
    image = Image.new("P", (20, 20), 0)
    image.putpalette([255, 255, 255, 200, 30, 30] + [0, 0, 0] * 254)
    image.paste(1, (5, 5, 15, 15))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", transparency=0)
    return buffer.getvalue()


class TestDecode:
    """Tests for decode."""

    def test_reports_intrinsic_metadata(self):
        raw = decode(create_test_image(120, 80, orientation=6))

        assert raw.width == 120
        assert raw.height == 80
        assert raw.format == "JPEG"
        assert raw.channels == 3
        assert raw.orientation == 6
        assert raw.byte_size > 0

    def test_png_with_alpha(self):
        raw = decode(create_test_image(20, 20, format="PNG", mode="RGBA"))

        assert raw.format == "PNG"
        assert raw.channels == 4
        assert raw.has_alpha

    def test_reads_dpi(self):
        raw = decode(create_test_image(20, 20, format="PNG", dpi=300))
        assert raw.dpi == pytest.approx(300, abs=1)

    def test_missing_orientation_is_none(self):
        assert decode(create_test_image(10, 10)).orientation is None

    @pytest.mark.parametrize("data", [b"", b"not an image", b"\x89PNG\r\n\x1a\n garbage"])
    def test_bad_input_raises_decode_error(self, data):
        with pytest.raises(DecodeError):
            decode(data)

    def test_truncated_jpeg_raises_decode_error(self):
        data = create_test_image(200, 200)
        with pytest.raises(DecodeError):
            decode(data[: len(data) // 3])


class TestEncode:
    """Tests for encode."""

    def test_writes_only_given_exif(self):
        source = decode(create_test_image(40, 30, copyright="(c) Me", gps=True))

        data = encode(source.image, "JPEG", exif=orientation_only(3))
        exif = Image.open(io.BytesIO(data)).getexif()

        assert exif.get(ORIENTATION_TAG) == 3
        assert 0x8298 not in exif
        assert GPS_IFD_TAG not in exif

    def test_without_exif_writes_none(self):
        source = decode(create_test_image(40, 30, copyright="(c) Me"))
        data = encode(source.image, "JPEG")
        assert len(Image.open(io.BytesIO(data)).getexif()) == 0

    def test_png_metadata_is_dropped(self):
        source = decode(create_test_image(16, 16, format="PNG", copyright="(c) Me"))
        data = encode(source.image, "PNG")
        assert len(Image.open(io.BytesIO(data)).getexif()) == 0

    def test_jpeg_flattens_alpha(self):
        rgba = Image.new("RGBA", (10, 10), (255, 0, 0, 0))
        decoded = Image.open(io.BytesIO(encode(rgba, "JPEG")))

        assert decoded.mode == "RGB"
        # Transparent pixels become white
        r, g, b = decoded.getpixel((5, 5))
        assert min(r, g, b) > 240

    def test_palette_transparency_survives(self):
        source = decode(palette_png_with_transparency())
        decoded = Image.open(io.BytesIO(encode(source.image, "PNG")))

        assert decoded.mode == "P"
        assert decoded.info.get("transparency") == 0
        assert decoded.convert("RGBA").getpixel((0, 0))[3] == 0
        assert decoded.convert("RGBA").getpixel((10, 10))[3] == 255

    def test_palette_transparency_survives_webp(self):
        source = decode(palette_png_with_transparency())
        decoded = Image.open(io.BytesIO(encode(source.image, "WEBP")))

        assert decoded.mode == "RGBA"
        assert decoded.getpixel((0, 0))[3] == 0

    @pytest.mark.parametrize("fmt", ["JPEG", "PNG", "WEBP", "GIF", "TIFF"])
    def test_supported_formats_round_trip(self, fmt):
        image = Image.new("RGB", (12, 8), (10, 200, 30))
        decoded = Image.open(io.BytesIO(encode(image, fmt)))
        assert decoded.format == fmt
        assert decoded.size == (12, 8)

    def test_progressive_jpeg(self):
        image = Image.new("RGB", (64, 64), (10, 200, 30))
        decoded = Image.open(io.BytesIO(encode(image, "JPEG", progressive=True)))
        assert decoded.info.get("progressive") or decoded.info.get("progression")

    def test_unsupported_format_raises(self):
        with pytest.raises(TransformError, match="Unsupported output format"):
            encode(Image.new("RGB", (4, 4)), "BMP")


class TestDataUris:
    """Tests for the MIME and data URI helpers."""

    def test_mime_types(self):
        assert mime_type_for("JPEG") == "image/jpeg"
        assert mime_type_for("png") == "image/png"
        assert mime_type_for("XYZ") == "application/octet-stream"

    def test_data_uri_uses_real_mime_type(self):
        uri = to_data_uri(b"abc", "PNG")
        assert uri == "data:image/png;base64," + base64.b64encode(b"abc").decode()
        assert is_data_uri(uri)

    def test_decode_data_uri(self):
        assert decode_base64_payload(to_data_uri(b"payload", "JPEG")) == b"payload"

    def test_decode_bare_base64(self):
        assert decode_base64_payload(base64.b64encode(b"raw").decode()) == b"raw"

    @pytest.mark.parametrize(
        "payload",
        ["data:image/png;base64,", "data:image/png,abc", "data:image/png;base64,@@@", "%%%"],
    )
    def test_invalid_payload_raises(self, payload):
        with pytest.raises(DecodeError):
            decode_base64_payload(payload)


class TestExtractMetadata:
    """Tests for extract_metadata."""

    def test_basic_fields(self):
        info = extract_metadata(create_test_image(100, 150))

        assert info["width"] == 100
        assert info["height"] == 150
        assert info["format"] == "JPEG"
        assert info["mode"] == "RGB"
        assert info["exif"] == {}

    def test_named_exif_tags(self):
        info = extract_metadata(create_test_image(20, 20, copyright="(c) Me", author="Ann"))

        assert info["exif"]["Copyright"] == "(c) Me"
        assert info["exif"]["Artist"] == "Ann"

    def test_gps_hidden_by_default(self):
        data = create_test_image(20, 20, gps=True)

        assert "GPSInfo" not in extract_metadata(data)["exif"]
        assert "GPSInfo" in extract_metadata(data, include_gps=True)["exif"]

    def test_accepts_decoded_image(self):
        raw = decode(create_test_image(30, 10))
        assert extract_metadata(raw)["width"] == 30
