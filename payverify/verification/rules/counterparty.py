"""Counterparty identifier rule.

The UPI handle on the screenshot must be the receiver's handle. A
different handle means the money went to someone else. It is the single
strongest fraud signal, and one that always forces a rejection
recommendation regardless of how clean everything else looks.

Comparison is exact after case folding. Fuzzy similarity is computed
only as a hint for the human reviewer ("a1ice@okaxis" vs
"alice@okaxis" looks like an OCR slip, "bob@ybl" does not); it never
turns a mismatch into a match.
"""

from thefuzz import fuzz

from payverify.models import FlagCode, RuleResult


def normalize_upi_id(upi_id: str) -> str:
    return upi_id.strip().lower()


def counterparty_similarity(extracted_id: str, expected_id: str) -> int:
    """Character-level similarity (0-100) between two UPI handles."""
    return fuzz.ratio(normalize_upi_id(extracted_id), normalize_upi_id(expected_id))


def check_counterparty(
    extracted_id: str,
    expected_id: str,
    weight: int,
) -> RuleResult:
    if normalize_upi_id(extracted_id) == normalize_upi_id(expected_id):
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=[
            f"Payment went to '{extracted_id}' but the receiver's UPI ID is "
            f"'{expected_id}'"
        ],
        flags=[FlagCode.UPI_ID_MISMATCH],
    )
