"""Pydantic models for the payment verification engine."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UpiApp(str, Enum):
    """Payment app the screenshot was taken from."""
    GOOGLE_PAY = "GOOGLE_PAY"
    PHONEPE = "PHONEPE"
    PAYTM = "PAYTM"
    BHIM = "BHIM"
    AMAZON_PAY = "AMAZON_PAY"
    WHATSAPP_PAY = "WHATSAPP_PAY"
    OTHER = "OTHER"


class PaymentStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


class ParseField(str, Enum):
    """Hard-required fields the parser could not locate."""
    MISSING_AMOUNT = "MISSING_AMOUNT"
    MISSING_UPI_ID = "MISSING_UPI_ID"


class FlagCode(str, Enum):
    """Every risk flag the engine can raise."""
    AMOUNT_MISMATCH_CRITICAL = "AMOUNT_MISMATCH_CRITICAL"
    AMOUNT_MISMATCH_SIGNIFICANT = "AMOUNT_MISMATCH_SIGNIFICANT"
    AMOUNT_MISMATCH_MINOR = "AMOUNT_MISMATCH_MINOR"
    AMOUNT_MISMATCH_TRIVIAL = "AMOUNT_MISMATCH_TRIVIAL"
    UPI_ID_MISMATCH = "UPI_ID_MISMATCH"
    MISSING_SUCCESS_INDICATOR = "MISSING_SUCCESS_INDICATOR"
    MISSING_UPI_PATTERNS = "MISSING_UPI_PATTERNS"
    SUSPICIOUS_TRANSACTION_ID = "SUSPICIOUS_TRANSACTION_ID"
    UNUSUAL_TIME = "UNUSUAL_TIME"
    POSSIBLE_EDITING = "POSSIBLE_EDITING"
    LOW_OCR_CONFIDENCE = "LOW_OCR_CONFIDENCE"
    UNPARSED_TIMESTAMP = "UNPARSED_TIMESTAMP"
    MISSING_TRANSACTION_REF = "MISSING_TRANSACTION_REF"
    MISSING_DATA = "MISSING_DATA"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    RECEIVER_DISPUTED = "RECEIVER_DISPUTED"
    MANUALLY_DISPUTED = "MANUALLY_DISPUTED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RecommendedAction(str, Enum):
    AUTO_VERIFY = "AUTO_VERIFY"
    REQUIRE_RECEIVER_CONFIRMATION = "REQUIRE_RECEIVER_CONFIRMATION"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    REJECT = "REJECT"


class VerificationStatus(str, Enum):
    PENDING = "PENDING"
    AUTO_VERIFIED = "AUTO_VERIFIED"
    AWAITING_RECEIVER_CONFIRMATION = "AWAITING_RECEIVER_CONFIRMATION"
    AWAITING_MANUAL_REVIEW = "AWAITING_MANUAL_REVIEW"
    VERIFIED = "VERIFIED"
    DISPUTED = "DISPUTED"
    REJECTED = "REJECTED"


class VerificationMethod(str, Enum):
    OCR = "OCR"
    RECEIVER_CONFIRMED = "RECEIVER_CONFIRMED"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    CALLBACK = "CALLBACK"


class OverrideOutcome(str, Enum):
    """Outcomes an admin can force on a non-terminal record."""
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    DISPUTED = "DISPUTED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class OcrResult(BaseModel):
    """Raw output of the text extractor."""
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(ge=0, le=100)


class ExtractedPaymentData(BaseModel):
    """Structured payment facts read from a screenshot transcript."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    counterparty_id: str
    transaction_ref: Optional[str] = None
    occurred_at: datetime
    timestamp_parsed: bool  # False when occurred_at fell back to "now"
    status_keyword_found: bool
    payment_status: PaymentStatus = PaymentStatus.PENDING
    source_app: UpiApp = UpiApp.OTHER
    bank: Optional[str] = None


class RuleResult(BaseModel):
    """Output of an individual risk rule check."""
    score_delta: int  # Points to add to cumulative risk score
    reasons: list[str]
    flags: list[FlagCode]


class RiskAssessment(BaseModel):
    """Fraud score, level and recommended action for one attempt."""
    score: int = Field(ge=0, le=100)
    level: RiskLevel
    flags: list[FlagCode]
    recommended_action: RecommendedAction
    reasons: list[str] = Field(default_factory=list)
    confidence: float = 0.0  # OCR confidence, 0 when evidence was unusable


class VerificationEvidence(BaseModel):
    """Audit copy of what the decision was based on."""
    raw_text: Optional[str] = None
    ocr_confidence: float = 0.0
    extracted: Optional[ExtractedPaymentData] = None
    missing_fields: list[ParseField] = Field(default_factory=list)
    extraction_error: Optional[str] = None
    # Reviewer hint only; never used to accept a mismatched identifier
    counterparty_similarity: Optional[int] = None


class VerificationRecord(BaseModel):
    """One verification attempt for a settlement."""
    settlement_id: str
    attempt: int = 1
    version: int = 0
    payer_id: Optional[str] = None
    receiver_id: str
    expected_amount: Decimal
    expected_counterparty_id: str
    status: VerificationStatus = VerificationStatus.PENDING
    method: VerificationMethod = VerificationMethod.OCR
    risk_assessment: RiskAssessment
    evidence: VerificationEvidence
    receiver_confirmed: bool = False
    receiver_disputed: bool = False
    dispute_reason: Optional[str] = None
    false_positive: bool = False
    resolved_by: Optional[str] = None
    resolution_notes: Optional[str] = None
    trust_score_impact: int = 0
    next_steps: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None


class EvidencePayload(BaseModel):
    """Either an OCR transcript or a base64-encoded screenshot."""
    text: Optional[str] = None
    image_base64: Optional[str] = None


class VerificationRequest(BaseModel):
    """Incoming request to verify a settlement payment."""
    model_config = ConfigDict(str_strip_whitespace=True)

    settlement_id: str
    payer_id: Optional[str] = None
    receiver_id: str
    expected_amount: Decimal
    expected_counterparty_id: str
    evidence: EvidencePayload


class ReceiverConfirmationRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    receiver_id: str
    confirmed: bool
    reason: Optional[str] = None


class ManualOverrideRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    admin_id: str
    outcome: OverrideOutcome
    notes: str = ""


class VerificationResponse(BaseModel):
    """Stable contract consumed by the settlement-status collaborator."""
    settlement_id: str
    attempt: int
    status: VerificationStatus
    method: VerificationMethod
    risk_score: int
    risk_level: RiskLevel
    flags: list[FlagCode]
    recommended_action: RecommendedAction
    receiver_confirmed: bool
    receiver_disputed: bool
    trust_score_impact: int
    next_steps: list[str]

    @classmethod
    def from_record(cls, record: VerificationRecord) -> "VerificationResponse":
        assessment = record.risk_assessment
        return cls(
            settlement_id=record.settlement_id,
            attempt=record.attempt,
            status=record.status,
            method=record.method,
            risk_score=assessment.score,
            risk_level=assessment.level,
            flags=assessment.flags,
            recommended_action=assessment.recommended_action,
            receiver_confirmed=record.receiver_confirmed,
            receiver_disputed=record.receiver_disputed,
            trust_score_impact=record.trust_score_impact,
            next_steps=record.next_steps,
        )


class AuditEntry(BaseModel):
    """Full audit trail entry for a state change."""
    settlement_id: str
    attempt: int
    timestamp: datetime
    action: str
    performed_by: str
    from_status: Optional[VerificationStatus] = None
    to_status: VerificationStatus
    notes: Optional[str] = None


class VerificationStats(BaseModel):
    """Aggregate statistics across the latest attempt of every settlement."""
    total: int
    by_status: dict[str, int]
    by_risk_level: dict[str, int]
    by_method: dict[str, int]
    success_rate: float
    fraud_detection_rate: float
    average_risk_score: float


class TrustScore(BaseModel):
    user_id: str
    score: int


class RiskWeights(BaseModel):
    """Points each risk rule adds to the cumulative score."""
    amount_mismatch_critical: int = 50  # > 10%
    amount_mismatch_significant: int = 30  # 5-10%
    amount_mismatch_minor: int = 15  # 1-5%
    amount_mismatch_trivial: int = 5  # 0.1-1%
    upi_id_mismatch: int = 60
    missing_success_indicator: int = 20
    missing_upi_patterns: int = 20
    suspicious_transaction_id: int = 25
    unusual_time: int = 10
    possible_editing: int = 25
    low_ocr_confidence: int = 10
    unparsed_timestamp: int = 0
    missing_data: int = 40


class VerificationConfig(BaseModel):
    """Tunable weights and thresholds for the verification engine."""
    weights: RiskWeights = Field(default_factory=RiskWeights)
    medium_threshold: int = 40
    high_threshold: int = 60
    critical_threshold: int = 80
    # Score floor when the payment went to/for the wrong party
    wrong_party_score_floor: int = 60
    min_canonical_patterns: int = 4
    unusual_hours_start: int = 0
    unusual_hours_end: int = 5  # inclusive
    ocr_timeout_seconds: float = 15.0
    ocr_min_confidence: float = 60.0
    app_fuzzy_threshold: int = 85
    initial_trust_score: int = 50

    @model_validator(mode="after")
    def check_thresholds(self) -> "VerificationConfig":
        if not 0 < self.medium_threshold < self.high_threshold < self.critical_threshold <= 100:
            raise ValueError(
                "Thresholds must satisfy 0 < medium < high < critical <= 100"
            )
        if not (0 <= self.unusual_hours_start <= 23 and 0 <= self.unusual_hours_end <= 23):
            raise ValueError("Unusual hours must be between 0 and 23")
        return self
