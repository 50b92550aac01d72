"""Tests for the amount mismatch rule."""

from decimal import Decimal

from payverify.models import FlagCode, RiskWeights
from payverify.verification.rules.amount import check_amount, mismatch_percent


def _check(extracted, expected="1000.00"):
    return check_amount(Decimal(extracted), Decimal(expected), RiskWeights())


class TestMismatchPercent:
    def test_exact(self):
        assert mismatch_percent(Decimal("500"), Decimal("500")) == 0

    def test_under_and_over_are_symmetric(self):
        assert mismatch_percent(Decimal("850"), Decimal("1000")) == 15
        assert mismatch_percent(Decimal("1150"), Decimal("1000")) == 15

    def test_non_positive_expected(self):
        assert mismatch_percent(Decimal("10"), Decimal("0")).is_infinite()


class TestCheckAmount:
    def test_exact_match_no_score(self):
        result = _check("1000.00")
        assert result.score_delta == 0
        assert result.flags == []

    def test_below_trivial_band(self):
        """0.1% exactly is not above the trivial threshold."""
        result = _check("999.00")
        assert result.score_delta == 0

    def test_trivial(self):
        result = _check("995.00")
        assert result.score_delta == 5
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_TRIVIAL]

    def test_minor(self):
        result = _check("980.00")
        assert result.score_delta == 15
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_MINOR]

    def test_significant(self):
        result = _check("940.00")
        assert result.score_delta == 30
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_SIGNIFICANT]

    def test_ten_percent_is_still_significant(self):
        result = _check("900.00")
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_SIGNIFICANT]

    def test_critical(self):
        result = _check("850.00")
        assert result.score_delta == 50
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_CRITICAL]
        assert "15.00% off" in result.reasons[0]

    def test_overpayment_scored_too(self):
        result = _check("1200.00")
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_CRITICAL]

    def test_zero_expected_is_critical(self):
        result = _check("10.00", expected="0")
        assert result.flags == [FlagCode.AMOUNT_MISMATCH_CRITICAL]

    def test_larger_mismatch_never_scores_lower(self):
        extracted = ["1000", "999.5", "998", "990", "970", "950", "920", "890", "500", "1"]
        scores = [_check(value).score_delta for value in extracted]
        assert scores == sorted(scores)

    def test_custom_weights(self):
        weights = RiskWeights(amount_mismatch_critical=70)
        result = check_amount(Decimal("500"), Decimal("1000"), weights)
        assert result.score_delta == 70
