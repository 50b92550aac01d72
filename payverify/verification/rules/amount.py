"""Amount mismatch rule.

Compares the amount read from the screenshot with the amount the
settlement expects. A payer who sends less than owed (or reuses an old
screenshot of a different payment) shows up here first. Bands are
checked from the widest mismatch down, so a larger mismatch can never
score lower than a smaller one.
"""

from decimal import Decimal

from payverify.models import FlagCode, RiskWeights, RuleResult


def mismatch_percent(extracted: Decimal, expected: Decimal) -> Decimal:
    """Percentage difference relative to the expected amount.

    A non-positive expected amount cannot be divided by; any extracted
    value is then treated as an unbounded mismatch.
    """
    if expected <= 0:
        return Decimal("Infinity")
    return abs(extracted - expected) / expected * 100


def check_amount(
    extracted: Decimal,
    expected: Decimal,
    weights: RiskWeights,
) -> RuleResult:
    """Score the gap between the extracted and expected amounts."""
    percent = mismatch_percent(extracted, expected)

    if percent > 10:
        delta, flag = weights.amount_mismatch_critical, FlagCode.AMOUNT_MISMATCH_CRITICAL
    elif percent > 5:
        delta, flag = weights.amount_mismatch_significant, FlagCode.AMOUNT_MISMATCH_SIGNIFICANT
    elif percent > 1:
        delta, flag = weights.amount_mismatch_minor, FlagCode.AMOUNT_MISMATCH_MINOR
    elif percent > Decimal("0.1"):
        delta, flag = weights.amount_mismatch_trivial, FlagCode.AMOUNT_MISMATCH_TRIVIAL
    else:
        return RuleResult(score_delta=0, reasons=[], flags=[])

    if percent.is_infinite():
        detail = "expected amount is not positive"
    else:
        detail = f"{percent.quantize(Decimal('0.01'))}% off"

    return RuleResult(
        score_delta=delta,
        reasons=[
            f"Screenshot amount {extracted} does not match expected "
            f"{expected} ({detail})"
        ],
        flags=[flag],
    )
