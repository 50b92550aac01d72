"""Shared fixtures for the test suite."""

import base64
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from payverify.main import app
from payverify.models import (
    EvidencePayload,
    OcrResult,
    RecommendedAction,
    RiskAssessment,
    RiskLevel,
    VerificationConfig,
    VerificationEvidence,
    VerificationRecord,
    VerificationRequest,
    VerificationStatus,
)
from payverify.storage.memory import MemoryStore
from payverify.verification.engine import VerificationEngine


FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)

FAKE_IMAGE_B64 = base64.b64encode(b"fake-image-bytes").decode()


class FakeExtractor:
    """TextExtractor returning canned text, or raising a canned error."""

    def __init__(self, text: str = "", confidence: float = 95.0, error: Optional[Exception] = None):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls: list = []

    def extract_text(self, image_bytes, timeout=None):
        self.calls.append((image_bytes, timeout))
        if self.error is not None:
            raise self.error
        return OcrResult(text=self.text, confidence=self.confidence)


@pytest.fixture
def config():
    return VerificationConfig()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def engine(store, config, extractor):
    return VerificationEngine(
        store=store,
        config=config,
        extractor=extractor,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def make_text(
    amount: Optional[str] = "500.00",
    upi_id: Optional[str] = "alice@okaxis",
    ref: Optional[str] = "503918274615",
    when: Optional[str] = "15/03/2025 10:30 AM",
    status: str = "Payment Successful",
    app_name: str = "Google Pay",
) -> str:
    """Transcript of a Google Pay receipt; pass None to leave a line out."""
    lines = [app_name, status]
    if amount is not None:
        lines.append(f"₹{amount}")
    lines.append("To: Alice Sharma")
    if upi_id is not None:
        lines.append(upi_id)
    if ref is not None:
        lines.append(f"UPI Transaction ID: {ref}")
    if when is not None:
        lines.append(when)
    lines.append("HDFC Bank")
    return "\n".join(lines)


def make_record(
    settlement_id: str = "stl-1",
    attempt: int = 1,
    status: VerificationStatus = VerificationStatus.AWAITING_RECEIVER_CONFIRMATION,
    score: int = 10,
    created_at: datetime = FIXED_NOW,
) -> VerificationRecord:
    return VerificationRecord(
        settlement_id=settlement_id,
        attempt=attempt,
        payer_id="payer-1",
        receiver_id="receiver-1",
        expected_amount=Decimal("500.00"),
        expected_counterparty_id="alice@okaxis",
        status=status,
        risk_assessment=RiskAssessment(
            score=score,
            level=RiskLevel.LOW,
            flags=[],
            recommended_action=RecommendedAction.AUTO_VERIFY,
        ),
        evidence=VerificationEvidence(raw_text="₹500.00 alice@okaxis"),
        created_at=created_at,
        updated_at=created_at,
    )


def make_request(
    settlement_id: str = "stl-1",
    payer_id: Optional[str] = "payer-1",
    receiver_id: str = "receiver-1",
    expected_amount: str = "500.00",
    expected_counterparty_id: str = "alice@okaxis",
    text: Optional[str] = None,
    image_base64: Optional[str] = None,
) -> VerificationRequest:
    if text is None and image_base64 is None:
        text = make_text()
    return VerificationRequest(
        settlement_id=settlement_id,
        payer_id=payer_id,
        receiver_id=receiver_id,
        expected_amount=Decimal(expected_amount),
        expected_counterparty_id=expected_counterparty_id,
        evidence=EvidencePayload(text=text, image_base64=image_base64),
    )
