"""Tests for the payment transcript parser."""

from datetime import datetime
from decimal import Decimal

import pytest

from payverify.errors import ParseError
from payverify.models import ParseField, PaymentStatus, UpiApp
from payverify.verification.parser import (
    detect_bank,
    detect_payment_status,
    detect_source_app,
    extract_amount,
    extract_counterparty_id,
    extract_timestamp,
    extract_transaction_ref,
    parse_payment_text,
)
from tests.conftest import make_text

FALLBACK = datetime(2030, 1, 1, 9, 0)


def _now():
    return FALLBACK


class TestExtractAmount:
    def test_rupee_symbol(self):
        assert extract_amount("₹500.00") == Decimal("500.00")

    def test_thousands_separator(self):
        assert extract_amount("Paid ₹1,250.50") == Decimal("1250.50")

    def test_rs_prefix(self):
        assert extract_amount("Rs. 750") == Decimal("750")

    def test_labelled_amount(self):
        assert extract_amount("Amount: 99") == Decimal("99")

    def test_largest_amount_wins(self):
        """A fee or balance beside the transfer must not be picked."""
        assert extract_amount("₹1,000.00\nFee ₹5.00\nBalance Rs 120") == Decimal("1000.00")

    def test_bare_numbers_ignored(self):
        assert extract_amount("Ref 503918274615 on 15/03/2025") is None

    def test_zero_ignored(self):
        assert extract_amount("₹0.00") is None


class TestExtractCounterpartyId:
    def test_found(self):
        assert extract_counterparty_id("To: alice@okaxis") == "alice@okaxis"

    def test_lowercased_and_trailing_dot_dropped(self):
        assert extract_counterparty_id("Sent to Alice.S@OKAXIS.") == "alice.s@okaxis"

    def test_missing(self):
        assert extract_counterparty_id("Paid to Alice Sharma") is None


class TestExtractTransactionRef:
    def test_utr(self):
        assert extract_transaction_ref("UTR: 503918274615") == "503918274615"

    def test_transaction_id(self):
        assert extract_transaction_ref("UPI Transaction ID: T2503151030ABC") == "T2503151030ABC"

    def test_word_without_digit_not_a_reference(self):
        assert extract_transaction_ref("Transaction Successful") is None

    def test_upi_id_not_a_reference(self):
        assert extract_transaction_ref("UPI ID: bob123@ybl") is None


class TestExtractTimestamp:
    def test_numeric_day_first_with_meridiem(self):
        ts, parsed = extract_timestamp("15/03/2025 10:30 AM", now=_now)
        assert parsed is True
        assert ts == datetime(2025, 3, 15, 10, 30)

    def test_pm(self):
        ts, _ = extract_timestamp("15/03/2025 9:45 pm", now=_now)
        assert ts.hour == 21

    def test_twelve_am_is_midnight(self):
        ts, _ = extract_timestamp("15/03/2025 12:10 AM", now=_now)
        assert ts.hour == 0

    def test_iso_date(self):
        ts, parsed = extract_timestamp("2025-03-15 22:05", now=_now)
        assert parsed is True
        assert ts == datetime(2025, 3, 15, 22, 5)

    def test_day_month_name(self):
        ts, parsed = extract_timestamp("12 Mar 2025, 02:15 am", now=_now)
        assert parsed is True
        assert ts == datetime(2025, 3, 12, 2, 15)

    def test_month_name_day(self):
        ts, parsed = extract_timestamp("March 15, 2025 at 9:45 pm", now=_now)
        assert parsed is True
        assert ts == datetime(2025, 3, 15, 21, 45)

    def test_no_date_falls_back_to_now(self):
        ts, parsed = extract_timestamp("10:30 AM", now=_now)
        assert parsed is False
        assert ts == FALLBACK

    def test_impossible_date_falls_back(self):
        ts, parsed = extract_timestamp("31/02/2025 10:00", now=_now)
        assert parsed is False
        assert ts == FALLBACK


class TestDetection:
    def test_payment_status_success(self):
        assert detect_payment_status("Payment Successful") == PaymentStatus.SUCCESS

    def test_payment_status_failed(self):
        assert detect_payment_status("Payment Failed") == PaymentStatus.FAILED

    def test_payment_status_pending(self):
        assert detect_payment_status("Processing your request") == PaymentStatus.PENDING

    def test_app_exact(self):
        assert detect_source_app("PhonePe\nTransaction Successful") == UpiApp.PHONEPE

    def test_app_garbled(self):
        assert detect_source_app("G00gle Pay\nPayment Successful") == UpiApp.GOOGLE_PAY

    def test_upi_handle_is_not_the_app(self):
        assert detect_source_app("Paid to alice@paytm") == UpiApp.OTHER

    def test_bank(self):
        assert detect_bank("Debited from HDFC Bank") == "HDFC"

    def test_no_bank(self):
        assert detect_bank("Paid to alice@okaxis") is None


class TestParsePaymentText:
    def test_full_receipt(self):
        data = parse_payment_text(make_text(), now=_now)
        assert data.amount == Decimal("500.00")
        assert data.counterparty_id == "alice@okaxis"
        assert data.transaction_ref == "503918274615"
        assert data.occurred_at == datetime(2025, 3, 15, 10, 30)
        assert data.timestamp_parsed is True
        assert data.status_keyword_found is True
        assert data.payment_status == PaymentStatus.SUCCESS
        assert data.source_app == UpiApp.GOOGLE_PAY
        assert data.bank == "HDFC"

    def test_missing_amount(self):
        with pytest.raises(ParseError) as exc_info:
            parse_payment_text(make_text(amount=None), now=_now)
        assert exc_info.value.missing == [ParseField.MISSING_AMOUNT]

    def test_missing_both(self):
        with pytest.raises(ParseError) as exc_info:
            parse_payment_text("Payment Successful", now=_now)
        assert exc_info.value.missing == [
            ParseField.MISSING_AMOUNT,
            ParseField.MISSING_UPI_ID,
        ]

    def test_optional_fields_absent(self):
        data = parse_payment_text(make_text(ref=None, when=None), now=_now)
        assert data.transaction_ref is None
        assert data.timestamp_parsed is False
        assert data.occurred_at == FALLBACK
