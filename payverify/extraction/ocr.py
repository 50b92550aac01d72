"""Text extraction from payment screenshots.

The engine only depends on the ``TextExtractor`` protocol. The shipped
implementation runs Tesseract through pytesseract after a light Pillow
preprocessing pass (grayscale + autocontrast), which is enough for the
flat, high-contrast screens UPI apps render.
"""

import base64
import binascii
import io
import logging
import time
from typing import Optional, Protocol

import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError

from payverify.errors import ExtractionFailure, ExtractionTimeout
from payverify.models import OcrResult

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = {"PNG", "JPEG", "WEBP", "TIFF", "BMP"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024

# Sparse text mode suits screenshots: scattered labels rather than paragraphs
TESSERACT_CONFIG = "--oem 1 --psm 11 -c preserve_interword_spaces=1"


class TextExtractor(Protocol):
    """Anything that can turn image bytes into text plus a confidence."""

    def extract_text(
        self, image_bytes: bytes, timeout: Optional[float] = None
    ) -> OcrResult:
        ...


def decode_base64_image(payload: str) -> bytes:
    """Decode a base64 image, tolerating a ``data:image/...;base64,`` prefix."""
    data = payload.split("base64,", 1)[1] if "base64," in payload else payload
    try:
        return base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ExtractionFailure(f"Evidence image is not valid base64: {exc}") from exc


def _open_image(image_bytes: bytes) -> Image.Image:
    if not image_bytes:
        raise ExtractionFailure("Evidence image is empty")
    if len(image_bytes) > MAX_IMAGE_BYTES:
        raise ExtractionFailure(
            f"Evidence image too large ({len(image_bytes)} bytes, "
            f"limit {MAX_IMAGE_BYTES})"
        )
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ExtractionFailure(f"Unable to read image: {exc}") from exc
    if image.format not in ALLOWED_FORMATS:
        raise ExtractionFailure(f"Unsupported image format: {image.format}")
    return image


def _preprocess(image: Image.Image) -> Image.Image:
    gray = ImageOps.grayscale(image)
    return ImageOps.autocontrast(gray)


def _rebuild_text(data: dict) -> tuple[str, float]:
    """Join Tesseract's word table back into lines and average the confidences."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][i])
        # Tesseract reports -1 for non-word boxes
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return text, max(0.0, min(confidence, 100.0))


class TesseractExtractor:
    """TextExtractor backed by a local Tesseract install."""

    def __init__(self, lang: str = "eng", config: str = TESSERACT_CONFIG) -> None:
        self.lang = lang
        self.config = config

    def extract_text(
        self, image_bytes: bytes, timeout: Optional[float] = None
    ) -> OcrResult:
        image = _preprocess(_open_image(image_bytes))
        started = time.monotonic()

        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.lang,
                config=self.config,
                output_type=pytesseract.Output.DICT,
                timeout=timeout or 0,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise ExtractionFailure(f"OCR engine unavailable: {exc}") from exc
        except RuntimeError as exc:
            # TesseractError is a RuntimeError; a killed process is a bare one
            if "timeout" in str(exc).lower():
                raise ExtractionTimeout(
                    f"OCR did not finish within {timeout} seconds"
                ) from exc
            raise ExtractionFailure(f"OCR engine error: {exc}") from exc

        text, confidence = _rebuild_text(data)
        logger.debug(
            "OCR completed in %.0fms, confidence %.1f, %d chars",
            (time.monotonic() - started) * 1000,
            confidence,
            len(text),
        )
        return OcrResult(text=text, confidence=confidence)
