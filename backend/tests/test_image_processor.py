"""Tests for Pillow-based photo processing."""

import io

import pytest
from PIL import Image

from coliving_platform.services.image_processor import (
    DEFAULT_THUMBNAIL_SIZES,
    ImageProcessingError,
    assess_image_quality,
    enhance_for_ocr,
    generate_thumbnails,
    optimal_compression_settings,
    process_image,
    process_receipt_image,
    validate_image,
)


def make_image(width=800, height=600, mode="RGB", color=(180, 120, 60), fmt="JPEG") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, fmt)
    return buffer.getvalue()


def dimensions(data: bytes) -> tuple[int, int]:
    return Image.open(io.BytesIO(data)).size


class TestValidate:
    def test_valid_jpeg(self):
        result = validate_image(make_image())
        assert result["valid"] is True
        assert result["metadata"]["format"] == "jpeg"
        assert (result["metadata"]["width"], result["metadata"]["height"]) == (800, 600)

    def test_valid_heif(self):
        result = validate_image(make_image(640, 480, fmt="HEIF"))
        assert result["valid"] is True
        assert result["metadata"]["format"] == "heif"

    def test_not_an_image(self):
        result = validate_image(b"definitely not pixels")
        assert result == {"valid": False, "error": "Unable to determine image format", "metadata": None}

    def test_unsupported_format(self):
        result = validate_image(make_image(mode="P", color=1, fmt="GIF"))
        assert result["valid"] is False
        assert result["error"].startswith("Unsupported format: gif")

    def test_too_small(self):
        result = validate_image(make_image(50, 400, fmt="PNG"))
        assert "too small" in result["error"]

    def test_too_large(self):
        result = validate_image(make_image(9000, 100, fmt="PNG"))
        assert "too large" in result["error"]


class TestProcess:
    def test_downscales_keeping_aspect(self):
        processed = process_image(make_image(3000, 1000), max_width=2048, max_height=2048)
        assert processed.width == 2048
        assert 682 <= processed.height <= 683
        assert processed.format == "jpeg"
        assert processed.size == len(processed.data)

    def test_never_enlarges(self):
        processed = process_image(make_image(200, 120))
        assert (processed.width, processed.height) == (200, 120)

    def test_png_output(self):
        processed = process_image(make_image(fmt="PNG"), format="png")
        assert Image.open(io.BytesIO(processed.data)).format == "PNG"

    def test_corrupt_input(self):
        with pytest.raises(ImageProcessingError):
            process_image(b"not an image at all")

    def test_thumbnails(self):
        thumbnails = generate_thumbnails(make_image(3000, 1000))
        assert set(thumbnails) == set(DEFAULT_THUMBNAIL_SIZES)
        assert dimensions(thumbnails["small"].data) == (150, 150)
        assert dimensions(thumbnails["medium"].data) == (300, 300)
        assert dimensions(thumbnails["large"].data) == (600, 200)

    def test_heif_receipt_becomes_jpeg(self):
        result = process_receipt_image(make_image(640, 480, fmt="HEIF"))
        assert (result.compressed.width, result.compressed.height) == (640, 480)
        assert dimensions(result.compressed.data) == (640, 480)
        assert result.compressed.metadata["format"] == "jpeg"

    def test_receipt_pipeline(self):
        result = process_receipt_image(make_image(800, 600))
        assert (result.original.width, result.original.height) == (800, 600)
        assert (result.compressed.width, result.compressed.height) == (800, 600)
        assert set(result.thumbnails) == {"small", "medium", "large"}
        assert result.compressed.metadata["format"] == "jpeg"


class TestCompressionSettings:
    def test_transparent_png(self):
        image = Image.new("RGBA", (200, 200), (255, 0, 0, 0))
        buffer = io.BytesIO()
        image.save(buffer, "PNG")
        settings = optimal_compression_settings(buffer.getvalue())
        assert (settings["format"], settings["quality"]) == ("png", 90)

    def test_grayscale(self):
        settings = optimal_compression_settings(make_image(mode="L", color=128, fmt="PNG"))
        assert (settings["format"], settings["quality"]) == ("jpeg", 80)

    def test_large_image_lowers_quality(self):
        settings = optimal_compression_settings(make_image(2100, 2000))
        assert settings["quality"] == 80

    def test_unreadable_uses_defaults(self):
        assert optimal_compression_settings(b"nope")["quality"] == 85


class TestOcrPreparation:
    def test_enhance_returns_grayscale_png(self):
        enhanced = enhance_for_ocr(make_image())
        image = Image.open(io.BytesIO(enhanced))
        assert (image.format, image.mode) == ("PNG", "L")

    def test_enhance_passes_through_bad_input(self):
        assert enhance_for_ocr(b"raw") == b"raw"

    def test_quality_dark_low_resolution(self):
        result = assess_image_quality(make_image(200, 200, color=(0, 0, 0), fmt="PNG"))
        assert result["score"] == 0.42
        assert result["issues"] == ["Low resolution", "Image too dark"]

    def test_quality_bright(self):
        result = assess_image_quality(make_image(1000, 1000, color=(255, 255, 255), fmt="PNG"))
        assert result["score"] == 0.7
        assert result["issues"] == ["Image too bright"]

    def test_quality_unreadable(self):
        assert assess_image_quality(b"x")["score"] == 0.5
