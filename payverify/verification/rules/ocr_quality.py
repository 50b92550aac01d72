"""OCR confidence rule.

A low-confidence read means every other rule worked from shaky text.
Only applies to image evidence; a transcript submitted as text has no
recognition confidence to judge.
"""

from typing import Optional

from payverify.models import FlagCode, RuleResult


def check_ocr_confidence(
    confidence: Optional[float],
    min_confidence: float,
    weight: int,
) -> RuleResult:
    if confidence is None or confidence >= min_confidence:
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=[
            f"OCR confidence {confidence:.1f} is below the minimum "
            f"{min_confidence:.1f}"
        ],
        flags=[FlagCode.LOW_OCR_CONFIDENCE],
    )
