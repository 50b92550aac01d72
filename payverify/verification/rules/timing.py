"""Timestamp rules.

Only a timestamp actually read from the screenshot is judged; when the
parser had to fall back to the current time the transaction time is
unknown, which is flagged separately (and weighted 0 by default) so the
result never depends on when the check happens to run.
"""

from payverify.models import ExtractedPaymentData, FlagCode, RuleResult


def in_window(hour: int, start: int, end: int) -> bool:
    """Inclusive hour window; ``start > end`` wraps past midnight."""
    if start <= end:
        return start <= hour <= end
    return hour >= start or hour <= end


def check_unusual_time(
    extracted: ExtractedPaymentData,
    start_hour: int,
    end_hour: int,
    weight: int,
) -> RuleResult:
    if not extracted.timestamp_parsed:
        return RuleResult(score_delta=0, reasons=[], flags=[])

    hour = extracted.occurred_at.hour
    if not in_window(hour, start_hour, end_hour):
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=[
            f"Payment time {extracted.occurred_at:%H:%M} falls in the unusual "
            f"window {start_hour:02d}:00-{end_hour:02d}:59"
        ],
        flags=[FlagCode.UNUSUAL_TIME],
    )


def check_timestamp_parsed(extracted: ExtractedPaymentData, weight: int) -> RuleResult:
    if extracted.timestamp_parsed:
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=["Payment date/time could not be read from the screenshot"],
        flags=[FlagCode.UNPARSED_TIMESTAMP],
    )
