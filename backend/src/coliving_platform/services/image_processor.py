"""Receipt and property photo processing with Pillow.

Functions are synchronous and CPU-bound; async callers wrap them with
asyncio.to_thread.
"""

import io
import logging
from dataclasses import dataclass, field

import pillow_heif
from PIL import Image, ImageFilter, ImageOps, ImageStat, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Phone cameras upload HEIF; Pillow reads it only through this plugin
pillow_heif.register_heif_opener()

SUPPORTED_FORMATS = {"jpeg", "png", "webp", "heif"}
MIN_DIMENSION = 100
MAX_DIMENSION = 8192
LARGE_IMAGE_PIXELS = 4_000_000
LOW_RESOLUTION_PIXELS = 500_000

DEFAULT_THUMBNAIL_SIZES = {
    "small": (150, 150),
    "medium": (300, 300),
    "large": (600, 600),
}

# name -> (jpeg quality, centre-crop to fill)
THUMBNAIL_SETTINGS = {
    "small": (80, True),
    "medium": (85, True),
    "large": (90, False),
}

PIL_FORMATS = {"jpeg": "JPEG", "png": "PNG", "webp": "WEBP"}


class ImageProcessingError(Exception):
    """Raised when an image cannot be decoded or encoded."""


@dataclass
class ProcessedImage:
    data: bytes
    width: int
    height: int
    format: str
    size: int

    @property
    def metadata(self) -> dict:
        return {"width": self.width, "height": self.height, "format": self.format, "size": self.size}


@dataclass
class ImageProcessingResult:
    original: ProcessedImage
    compressed: ProcessedImage
    thumbnails: dict[str, ProcessedImage] = field(default_factory=dict)


def _open(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError(f"Unable to read image: {e}") from e
    return image


def _encode(image: Image.Image, fmt: str, quality: int, progressive: bool = True) -> ProcessedImage:
    fmt = fmt.lower()
    if fmt not in PIL_FORMATS:
        raise ImageProcessingError(f"Unsupported output format: {fmt}")

    buffer = io.BytesIO()
    if fmt == "jpeg":
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        image.save(buffer, "JPEG", quality=quality, progressive=progressive, optimize=True)
    elif fmt == "png":
        image.save(buffer, "PNG", optimize=True, compress_level=9)
    else:
        image.save(buffer, "WEBP", quality=quality, method=6)

    data = buffer.getvalue()
    return ProcessedImage(data=data, width=image.width, height=image.height, format=fmt, size=len(data))


def _fit_inside(image: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Shrink to fit the bounds, keeping aspect ratio. Never enlarges."""
    fitted = image.copy()
    fitted.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
    return fitted


def process_image(
    data: bytes,
    quality: int = 85,
    max_width: int = 2048,
    max_height: int = 2048,
    format: str = "jpeg",
    progressive: bool = True,
) -> ProcessedImage:
    image = ImageOps.exif_transpose(_open(data))
    return _encode(_fit_inside(image, max_width, max_height), format, quality, progressive)


def generate_thumbnails(
    data: bytes, sizes: dict[str, tuple[int, int]] | None = None
) -> dict[str, ProcessedImage]:
    """Small and medium are centre-cropped to fill; large fits inside."""
    sizes = sizes or DEFAULT_THUMBNAIL_SIZES
    image = ImageOps.exif_transpose(_open(data))
    thumbnails = {}
    for name, (width, height) in sizes.items():
        quality, crop = THUMBNAIL_SETTINGS.get(name, (85, False))
        if crop:
            thumb = ImageOps.fit(image, (width, height), Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        else:
            thumb = _fit_inside(image, width, height)
        thumbnails[name] = _encode(thumb, "jpeg", quality)
    return thumbnails


def process_receipt_image(data: bytes) -> ImageProcessingResult:
    """High-quality original, storage copy and thumbnails for one upload."""
    result = ImageProcessingResult(
        original=process_image(data, quality=95, max_width=4096, max_height=4096),
        compressed=process_image(data, quality=85, max_width=2048, max_height=2048),
        thumbnails=generate_thumbnails(data),
    )
    logger.info(
        "Processed receipt image %dx%d (%d -> %d bytes)",
        result.original.width,
        result.original.height,
        len(data),
        result.compressed.size,
    )
    return result


def validate_image(data: bytes) -> dict:
    """Check format and dimensions. Returns {valid, error, metadata}."""
    try:
        image = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError):
        return {"valid": False, "error": "Unable to determine image format", "metadata": None}

    fmt = (image.format or "").lower()
    metadata = {"format": fmt, "width": image.width, "height": image.height, "mode": image.mode}
    if fmt not in SUPPORTED_FORMATS:
        supported = ", ".join(sorted(SUPPORTED_FORMATS))
        return {
            "valid": False,
            "error": f"Unsupported format: {fmt or 'unknown'}. Supported formats: {supported}",
            "metadata": metadata,
        }
    if image.width < MIN_DIMENSION or image.height < MIN_DIMENSION:
        return {
            "valid": False,
            "error": f"Image too small (minimum {MIN_DIMENSION}x{MIN_DIMENSION} pixels)",
            "metadata": metadata,
        }
    if image.width > MAX_DIMENSION or image.height > MAX_DIMENSION:
        return {
            "valid": False,
            "error": f"Image too large (maximum {MAX_DIMENSION}x{MAX_DIMENSION} pixels)",
            "metadata": metadata,
        }
    return {"valid": True, "error": None, "metadata": metadata}


def _has_transparency(image: Image.Image) -> bool:
    if image.mode in ("RGBA", "LA"):
        return image.getchannel("A").getextrema()[0] < 255
    return image.mode == "P" and "transparency" in image.info


def optimal_compression_settings(data: bytes) -> dict:
    """Pick output format and quality from the image's characteristics."""
    settings = {"quality": 85, "format": "jpeg", "progressive": True, "max_width": 2048, "max_height": 2048}
    try:
        image = _open(data)
    except ImageProcessingError:
        logger.warning("Could not inspect image, using default compression settings")
        return settings

    if _has_transparency(image):
        settings.update(format="png", quality=90)
    elif image.mode in ("L", "LA", "1"):
        settings["quality"] = 80

    if image.width * image.height > LARGE_IMAGE_PIXELS:
        settings["quality"] = max(settings["quality"] - 5, 75)
    return settings


def enhance_for_ocr(data: bytes) -> bytes:
    """Grayscale, stretch contrast and sharpen. Returns the input on failure."""
    try:
        image = ImageOps.exif_transpose(_open(data))
        enhanced = ImageOps.autocontrast(ImageOps.grayscale(image)).filter(ImageFilter.SHARPEN)
        buffer = io.BytesIO()
        enhanced.save(buffer, "PNG")
        return buffer.getvalue()
    except (ImageProcessingError, OSError, ValueError) as e:
        logger.warning("Image enhancement failed: %s", e)
        return data


def assess_image_quality(data: bytes) -> dict:
    """Heuristic OCR suitability score in [0, 1] with issues and advice."""
    try:
        image = _open(data)
    except ImageProcessingError:
        return {
            "score": 0.5,
            "issues": ["Unable to assess image quality"],
            "recommendations": ["Ensure image is valid and readable"],
        }

    score = 1.0
    issues: list[str] = []
    recommendations: list[str] = []

    if image.width * image.height < LOW_RESOLUTION_PIXELS:
        issues.append("Low resolution")
        recommendations.append("Use higher resolution camera")
        score *= 0.7

    means = ImageStat.Stat(image.convert("RGB")).mean
    brightness = sum(means) / len(means)
    if brightness < 50:
        issues.append("Image too dark")
        recommendations.append("Improve lighting")
        score *= 0.6
    elif brightness > 200:
        issues.append("Image too bright")
        recommendations.append("Reduce lighting or avoid flash")
        score *= 0.7

    return {"score": round(score, 2), "issues": issues, "recommendations": recommendations}
