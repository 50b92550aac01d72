"""Risk scoring: run every rule, aggregate, and derive level and action.

The decision is DETERMINISTIC: same transcript + same expectations +
same config = same assessment. Weights come from ``RiskWeights`` so
they can be tuned without touching rule code.

Priority:
  - Wrong party (UPI ID mismatch, or amount off by more than 10%) always
    recommends REJECT and lifts the score to at least the HIGH floor
  - Unusable evidence (MISSING_DATA) always recommends MANUAL_REVIEW
  - Otherwise the level decides:
    LOW -> AUTO_VERIFY, MEDIUM -> REQUIRE_RECEIVER_CONFIRMATION,
    HIGH -> MANUAL_REVIEW, CRITICAL -> REJECT
"""

from decimal import Decimal
from typing import Optional

from payverify.models import (
    ExtractedPaymentData,
    FlagCode,
    ParseField,
    RecommendedAction,
    RiskAssessment,
    RiskLevel,
    RuleResult,
    VerificationConfig,
)
from payverify.verification.rules.amount import check_amount
from payverify.verification.rules.content import (
    check_canonical_patterns,
    check_editing_markers,
    check_success_keyword,
)
from payverify.verification.rules.counterparty import check_counterparty
from payverify.verification.rules.ocr_quality import check_ocr_confidence
from payverify.verification.rules.reference import check_transaction_ref
from payverify.verification.rules.timing import (
    check_timestamp_parsed,
    check_unusual_time,
)

# Payment to, or for, the wrong party; never softened by other signals
WRONG_PARTY_FLAGS = frozenset(
    {FlagCode.UPI_ID_MISMATCH, FlagCode.AMOUNT_MISMATCH_CRITICAL}
)

LEVEL_ACTIONS = {
    RiskLevel.LOW: RecommendedAction.AUTO_VERIFY,
    RiskLevel.MEDIUM: RecommendedAction.REQUIRE_RECEIVER_CONFIRMATION,
    RiskLevel.HIGH: RecommendedAction.MANUAL_REVIEW,
    RiskLevel.CRITICAL: RecommendedAction.REJECT,
}


def risk_level_for(score: int, config: VerificationConfig) -> RiskLevel:
    """Step function from score to level."""
    if score >= config.critical_threshold:
        return RiskLevel.CRITICAL
    if score >= config.high_threshold:
        return RiskLevel.HIGH
    if score >= config.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommended_action_for(
    level: RiskLevel, flags: list[FlagCode]
) -> RecommendedAction:
    if WRONG_PARTY_FLAGS.intersection(flags):
        return RecommendedAction.REJECT
    if FlagCode.MISSING_DATA in flags:
        return RecommendedAction.MANUAL_REVIEW
    return LEVEL_ACTIONS[level]


def aggregate_results(
    rule_results: list[RuleResult],
    config: VerificationConfig,
    confidence: float = 0.0,
) -> RiskAssessment:
    """Combine results from all rule checks into one RiskAssessment."""
    total_score = 0
    reasons: list[str] = []
    flags: list[FlagCode] = []

    for result in rule_results:
        total_score += result.score_delta
        reasons.extend(result.reasons)
        for flag in result.flags:
            if flag not in flags:
                flags.append(flag)

    if WRONG_PARTY_FLAGS.intersection(flags):
        total_score = max(total_score, config.wrong_party_score_floor)

    # Cap the cumulative score at 100
    score = max(0, min(total_score, 100))
    level = risk_level_for(score, config)

    return RiskAssessment(
        score=score,
        level=level,
        flags=flags,
        recommended_action=recommended_action_for(level, flags),
        reasons=reasons,
        confidence=confidence,
    )


def _text_results(raw_text: str, config: VerificationConfig) -> list[RuleResult]:
    weights = config.weights
    return [
        check_success_keyword(raw_text, weights.missing_success_indicator),
        check_canonical_patterns(
            raw_text, config.min_canonical_patterns, weights.missing_upi_patterns
        ),
        check_editing_markers(raw_text, weights.possible_editing),
    ]


def assess(
    extracted: ExtractedPaymentData,
    expected_amount: Decimal,
    expected_counterparty_id: str,
    raw_text: str,
    config: VerificationConfig,
    ocr_confidence: Optional[float] = None,
) -> RiskAssessment:
    """Score parsed payment data against what the settlement expects.

    ``ocr_confidence`` is None for transcripts submitted as text.
    """
    weights = config.weights

    # Execute rules, most severe first
    rule_results = [
        # 1. Wrong recipient
        check_counterparty(
            extracted.counterparty_id,
            expected_counterparty_id,
            weights.upi_id_mismatch,
        ),
        # 2. Wrong amount
        check_amount(extracted.amount, expected_amount, weights),
        # 3. Placeholder reference
        check_transaction_ref(
            extracted.transaction_ref, weights.suspicious_transaction_id
        ),
        # 4-6. Whole-transcript checks
        *_text_results(raw_text, config),
        # 7. Timing
        check_unusual_time(
            extracted,
            config.unusual_hours_start,
            config.unusual_hours_end,
            weights.unusual_time,
        ),
        check_timestamp_parsed(extracted, weights.unparsed_timestamp),
        # 8. Recognition quality
        check_ocr_confidence(
            ocr_confidence, config.ocr_min_confidence, weights.low_ocr_confidence
        ),
    ]

    confidence = 100.0 if ocr_confidence is None else ocr_confidence
    return aggregate_results(rule_results, config, confidence=confidence)


def assess_unusable(
    config: VerificationConfig,
    raw_text: Optional[str] = None,
    missing_fields: Optional[list[ParseField]] = None,
    extraction_error: Optional[str] = None,
) -> RiskAssessment:
    """Assessment for evidence that could not be read or parsed.

    The attempt still gets scored from whatever text exists, but it is
    flagged MISSING_DATA (plus EXTRACTION_FAILED when OCR itself failed)
    and carries zero confidence, which routes it to a human.
    """
    reasons: list[str] = []
    flags = [FlagCode.MISSING_DATA]
    if extraction_error is not None:
        flags.append(FlagCode.EXTRACTION_FAILED)
        reasons.append(f"Screenshot could not be read: {extraction_error}")
    if missing_fields:
        names = ", ".join(field.value for field in missing_fields)
        reasons.append(f"Required payment details missing: {names}")

    rule_results = [
        RuleResult(
            score_delta=config.weights.missing_data, reasons=reasons, flags=flags
        )
    ]
    if raw_text:
        rule_results.extend(_text_results(raw_text, config))

    return aggregate_results(rule_results, config, confidence=0.0)
