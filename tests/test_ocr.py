"""Tests for the Tesseract-backed text extractor."""

import base64
import io

import pytesseract
import pytest
from PIL import Image

from payverify.errors import ExtractionFailure, ExtractionTimeout
from payverify.extraction import ocr
from payverify.extraction.ocr import TesseractExtractor, decode_base64_image


def _image_bytes(fmt="PNG"):
    buf = io.BytesIO()
    Image.new("L", (60, 20), color=255).save(buf, format=fmt)
    return buf.getvalue()


TESSERACT_DATA = {
    "text": ["Payment", "Successful", "", "₹500.00"],
    "conf": ["96", "90", "-1", "88"],
    "block_num": [1, 1, 1, 1],
    "par_num": [1, 1, 1, 1],
    "line_num": [1, 1, 1, 2],
}


class TestDecodeBase64Image:
    def test_plain(self):
        assert decode_base64_image(base64.b64encode(b"abc").decode()) == b"abc"

    def test_data_url_prefix(self):
        payload = "data:image/png;base64," + base64.b64encode(b"abc").decode()
        assert decode_base64_image(payload) == b"abc"

    def test_invalid(self):
        with pytest.raises(ExtractionFailure):
            decode_base64_image("not base64 at all!!")


class TestTesseractExtractor:
    def test_rebuilds_lines_and_averages_confidence(self, monkeypatch):
        monkeypatch.setattr(ocr.pytesseract, "image_to_data", lambda *a, **kw: TESSERACT_DATA)
        result = TesseractExtractor().extract_text(_image_bytes())
        assert result.text == "Payment Successful\n₹500.00"
        assert result.confidence == pytest.approx((96 + 90 + 88) / 3)

    def test_timeout_passed_through(self, monkeypatch):
        seen = {}

        def fake(image, **kwargs):
            seen.update(kwargs)
            return TESSERACT_DATA

        monkeypatch.setattr(ocr.pytesseract, "image_to_data", fake)
        TesseractExtractor().extract_text(_image_bytes(), timeout=7.5)
        assert seen["timeout"] == 7.5
        assert seen["lang"] == "eng"

    def test_timeout_raises_extraction_timeout(self, monkeypatch):
        def fake(*args, **kwargs):
            raise RuntimeError("Tesseract process timeout")

        monkeypatch.setattr(ocr.pytesseract, "image_to_data", fake)
        with pytest.raises(ExtractionTimeout):
            TesseractExtractor().extract_text(_image_bytes(), timeout=1)

    def test_missing_binary(self, monkeypatch):
        def fake(*args, **kwargs):
            raise pytesseract.TesseractNotFoundError()

        monkeypatch.setattr(ocr.pytesseract, "image_to_data", fake)
        with pytest.raises(ExtractionFailure) as exc_info:
            TesseractExtractor().extract_text(_image_bytes())
        assert not isinstance(exc_info.value, ExtractionTimeout)

    def test_engine_error(self, monkeypatch):
        def fake(*args, **kwargs):
            raise pytesseract.TesseractError(1, "bad input")

        monkeypatch.setattr(ocr.pytesseract, "image_to_data", fake)
        with pytest.raises(ExtractionFailure):
            TesseractExtractor().extract_text(_image_bytes())

    def test_not_an_image(self):
        with pytest.raises(ExtractionFailure):
            TesseractExtractor().extract_text(b"definitely not an image")

    def test_empty(self):
        with pytest.raises(ExtractionFailure):
            TesseractExtractor().extract_text(b"")

    def test_unsupported_format(self):
        with pytest.raises(ExtractionFailure, match="Unsupported image format"):
            TesseractExtractor().extract_text(_image_bytes("GIF"))

    def test_no_words(self, monkeypatch):
        empty = {"text": [""], "conf": ["-1"], "block_num": [1], "par_num": [1], "line_num": [1]}
        monkeypatch.setattr(ocr.pytesseract, "image_to_data", lambda *a, **kw: empty)
        result = TesseractExtractor().extract_text(_image_bytes())
        assert result.text == ""
        assert result.confidence == 0.0

    def test_decompression_bomb_rejected(self, monkeypatch):
        # 60x20 is well over twice this pixel limit
        monkeypatch.setattr(ocr.Image, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(ExtractionFailure, match="Unable to read image"):
            TesseractExtractor().extract_text(_image_bytes())
