"""Tests for the counterparty, content, reference, timing and OCR rules."""

from datetime import datetime
from decimal import Decimal

from payverify.models import ExtractedPaymentData, FlagCode
from payverify.verification.rules.content import (
    check_canonical_patterns,
    check_editing_markers,
    check_success_keyword,
    count_canonical_patterns,
)
from payverify.verification.rules.counterparty import (
    check_counterparty,
    counterparty_similarity,
)
from payverify.verification.rules.ocr_quality import check_ocr_confidence
from payverify.verification.rules.reference import (
    check_transaction_ref,
    is_synthetic_reference,
)
from payverify.verification.rules.timing import (
    check_timestamp_parsed,
    check_unusual_time,
    in_window,
)
from tests.conftest import make_text


def _extracted(occurred_at=datetime(2025, 3, 15, 10, 30), parsed=True):
    return ExtractedPaymentData(
        amount=Decimal("500"),
        counterparty_id="alice@okaxis",
        transaction_ref="503918274615",
        occurred_at=occurred_at,
        timestamp_parsed=parsed,
        status_keyword_found=True,
    )


class TestCounterparty:
    def test_match(self):
        result = check_counterparty("alice@okaxis", "alice@okaxis", 60)
        assert result.score_delta == 0
        assert result.flags == []

    def test_match_ignores_case_and_whitespace(self):
        result = check_counterparty("Alice@OKAXIS", " alice@okaxis ", 60)
        assert result.flags == []

    def test_mismatch(self):
        result = check_counterparty("bob@okaxis", "alice@okaxis", 60)
        assert result.score_delta == 60
        assert result.flags == [FlagCode.UPI_ID_MISMATCH]

    def test_near_miss_is_still_a_mismatch(self):
        """Similarity is a reviewer hint, never a match."""
        assert counterparty_similarity("a1ice@okaxis", "alice@okaxis") > 90
        result = check_counterparty("a1ice@okaxis", "alice@okaxis", 60)
        assert result.flags == [FlagCode.UPI_ID_MISMATCH]

    def test_similarity_of_unrelated_ids_is_low(self):
        assert counterparty_similarity("zed99@ybl", "alice@okaxis") < 50


class TestContent:
    def test_success_keyword_present(self):
        assert check_success_keyword("Payment Successful", 20).score_delta == 0

    def test_success_keyword_missing(self):
        result = check_success_keyword("Payment Processing", 20)
        assert result.score_delta == 20
        assert result.flags == [FlagCode.MISSING_SUCCESS_INDICATOR]

    def test_full_receipt_has_all_patterns(self):
        assert count_canonical_patterns(make_text()) == 6

    def test_few_patterns_flagged(self):
        result = check_canonical_patterns("hello ₹500", 4, 20)
        assert result.score_delta == 20
        assert result.flags == [FlagCode.MISSING_UPI_PATTERNS]
        assert "Only 1 of 6" in result.reasons[0]

    def test_enough_patterns(self):
        assert check_canonical_patterns(make_text(), 4, 20).flags == []

    def test_editing_word(self):
        result = check_editing_markers("Sample receipt ₹500", 25)
        assert result.score_delta == 25
        assert result.flags == [FlagCode.POSSIBLE_EDITING]

    def test_html_markup(self):
        assert check_editing_markers("<b>₹500</b>", 25).flags == [FlagCode.POSSIBLE_EDITING]

    def test_long_digit_run(self):
        assert check_editing_markers("Ref 12345678901234567890", 25).score_delta == 25

    def test_clean_receipt_not_flagged(self):
        assert check_editing_markers(make_text(), 25).flags == []


class TestReference:
    def test_real_utr(self):
        result = check_transaction_ref("503918274615", 25)
        assert result.score_delta == 0
        assert result.flags == []

    def test_synthetic_prefixes(self):
        for ref in ("TEST98765", "demo4711x", "FAKE20250315"):
            assert is_synthetic_reference(ref), ref

    def test_keyboard_run(self):
        result = check_transaction_ref("TXN1234567", 25)
        assert result.score_delta == 25
        assert result.flags == [FlagCode.SUSPICIOUS_TRANSACTION_ID]

    def test_repeated_digit(self):
        assert is_synthetic_reference("000000000000")

    def test_six_digits_only(self):
        assert is_synthetic_reference("482913")

    def test_missing_reference_flagged_but_not_scored(self):
        result = check_transaction_ref(None, 25)
        assert result.score_delta == 0
        assert result.flags == [FlagCode.MISSING_TRANSACTION_REF]


class TestTiming:
    def test_window(self):
        assert in_window(0, 0, 5)
        assert in_window(5, 0, 5)
        assert not in_window(6, 0, 5)

    def test_window_wraps_midnight(self):
        assert in_window(23, 22, 4)
        assert in_window(3, 22, 4)
        assert not in_window(12, 22, 4)

    def test_night_payment(self):
        result = check_unusual_time(_extracted(datetime(2025, 3, 15, 2, 15)), 0, 5, 10)
        assert result.score_delta == 10
        assert result.flags == [FlagCode.UNUSUAL_TIME]

    def test_daytime_payment(self):
        assert check_unusual_time(_extracted(), 0, 5, 10).flags == []

    def test_fallback_timestamp_not_judged(self):
        extracted = _extracted(datetime(2025, 3, 15, 3, 0), parsed=False)
        assert check_unusual_time(extracted, 0, 5, 10).flags == []

    def test_unparsed_timestamp_flagged(self):
        result = check_timestamp_parsed(_extracted(parsed=False), 0)
        assert result.score_delta == 0
        assert result.flags == [FlagCode.UNPARSED_TIMESTAMP]

    def test_unparsed_timestamp_weight_configurable(self):
        assert check_timestamp_parsed(_extracted(parsed=False), 15).score_delta == 15


class TestOcrConfidence:
    def test_text_evidence_not_judged(self):
        assert check_ocr_confidence(None, 60.0, 10).flags == []

    def test_confident_read(self):
        assert check_ocr_confidence(92.5, 60.0, 10).flags == []

    def test_low_confidence(self):
        result = check_ocr_confidence(41.0, 60.0, 10)
        assert result.score_delta == 10
        assert result.flags == [FlagCode.LOW_OCR_CONFIDENCE]
