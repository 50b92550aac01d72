"""Payment data parser.

Turns a raw OCR transcript of a UPI payment screen into structured
fields. Screens are noisy: fee and balance figures sit next to the real
amount, labels wrap across lines, and app names come out garbled. The
parser is therefore forgiving everywhere except for the two fields a
verification cannot do without: the amount and the counterparty's UPI
identifier. Missing either raises ParseError listing what was absent.
"""

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from thefuzz import fuzz

from payverify.errors import ParseError
from payverify.models import ExtractedPaymentData, ParseField, PaymentStatus, UpiApp

logger = logging.getLogger(__name__)

SUCCESS_KEYWORDS = ("success", "completed", "paid", "credited")
FAILURE_KEYWORDS = ("failed", "declined", "rejected", "cancelled")

# Currency-prefixed or labelled numbers: "₹1,250.00", "Rs. 500", "Amount: 99"
AMOUNT_PATTERN = re.compile(
    r"(?:₹|\brs\.?|\binr\b|\bamount\b|\bpaid\b)[\s:=\-]*(?:₹|rs\.?|inr)?\s*"
    r"(\d[\d,]*(?:\.\d{1,2})?)",
    re.IGNORECASE,
)

UPI_ID_PATTERN = re.compile(r"([a-zA-Z0-9.\-_]+@[a-zA-Z][a-zA-Z0-9.]*)")

# A labelled token of 6+ alphanumerics with at least one digit, not the
# local part of a UPI identifier ("UPI ID: bob123@ybl")
REFERENCE_PATTERN = re.compile(
    r"\b(?:utr|ref(?:erence)?|txn|transaction|id)\b"
    r"(?:\s*(?:no|number|id))?\.?[\s#:.\-]*"
    r"(?=[A-Za-z0-9]*\d)([A-Za-z0-9]{6,})\b(?![@.\-]\w)",
    re.IGNORECASE,
)

NUMERIC_DATE_PATTERN = re.compile(r"\b(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})\b")
ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
DAY_MONTH_PATTERN = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]{3,9})\.?,?\s+(\d{4})\b"
)
MONTH_DAY_PATTERN = re.compile(
    r"\b([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b"
)
TIME_PATTERN = re.compile(
    r"\b(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([ap]\.?\s?m\.?)?", re.IGNORECASE
)

MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

APP_PATTERNS = [
    (UpiApp.GOOGLE_PAY, re.compile(r"google\s*pay|\bg\s?pay\b", re.IGNORECASE)),
    (UpiApp.PHONEPE, re.compile(r"phone\s*pe", re.IGNORECASE)),
    (UpiApp.PAYTM, re.compile(r"\bpaytm\b", re.IGNORECASE)),
    (UpiApp.BHIM, re.compile(r"\bbhim\b", re.IGNORECASE)),
    (UpiApp.AMAZON_PAY, re.compile(r"amazon\s*pay", re.IGNORECASE)),
    (UpiApp.WHATSAPP_PAY, re.compile(r"whats\s*app\s*pay", re.IGNORECASE)),
]

# Canonical spellings for fuzzy matching of garbled app names. Short
# names like "bhim" are left out: at four letters every near word matches.
FUZZY_APP_NAMES = {
    "googlepay": UpiApp.GOOGLE_PAY,
    "phonepe": UpiApp.PHONEPE,
    "paytm": UpiApp.PAYTM,
    "amazonpay": UpiApp.AMAZON_PAY,
    "whatsapppay": UpiApp.WHATSAPP_PAY,
}

# Common OCR digit-for-letter confusions inside words
OCR_LETTER_FIXES = str.maketrans({"0": "o", "1": "l", "5": "s", "|": "l"})

BANK_PATTERN = re.compile(
    r"\b(axis|hdfc|icici|sbi|kotak|yes bank|union bank|canara|pnb|"
    r"bank of baroda|idfc|indusind|federal)\b",
    re.IGNORECASE,
)


def _to_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None


def extract_amount(text: str) -> Optional[Decimal]:
    """Return the largest currency-like amount in the text.

    Screens often show a fee or remaining balance beside the transfer;
    the transfer itself is the biggest figure on a payment receipt.
    """
    amounts = [
        value
        for value in (_to_decimal(m.group(1)) for m in AMOUNT_PATTERN.finditer(text))
        if value is not None and value > 0
    ]
    if not amounts:
        return None
    return max(amounts)


def extract_counterparty_id(text: str) -> Optional[str]:
    match = UPI_ID_PATTERN.search(text)
    if not match:
        return None
    return match.group(1).rstrip(".").lower()


def extract_transaction_ref(text: str) -> Optional[str]:
    match = REFERENCE_PATTERN.search(text)
    return match.group(1) if match else None


def _year(raw: str) -> int:
    year = int(raw)
    return year + 2000 if year < 100 else year


def _find_date(text: str) -> Optional[tuple[int, int, int]]:
    """Return (year, month, day) of the first date-like token in the text."""
    candidates: list[tuple[int, tuple[int, int, int]]] = []

    for m in NUMERIC_DATE_PATTERN.finditer(text):
        day, month = int(m.group(1)), int(m.group(2))
        # Day-first as Indian apps print it; swap only when that is impossible
        if month > 12 and day <= 12:
            day, month = month, day
        candidates.append((m.start(), (_year(m.group(3)), month, day)))
        break
    for m in ISO_DATE_PATTERN.finditer(text):
        candidates.append((m.start(), (int(m.group(1)), int(m.group(2)), int(m.group(3)))))
        break
    for m in DAY_MONTH_PATTERN.finditer(text):
        month = MONTHS.get(m.group(2)[:3].lower())
        if month:
            candidates.append((m.start(), (int(m.group(3)), month, int(m.group(1)))))
            break
    for m in MONTH_DAY_PATTERN.finditer(text):
        month = MONTHS.get(m.group(1)[:3].lower())
        if month:
            candidates.append((m.start(), (int(m.group(3)), month, int(m.group(2)))))
            break

    if not candidates:
        return None
    return min(candidates)[1]


def _find_time(text: str) -> Optional[tuple[int, int, int]]:
    """Return (hour, minute, second) of the first time-like token."""
    match = TIME_PATTERN.search(text)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").lower().replace(".", "").replace(" ", "")
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
    return hour, minute, second


def extract_timestamp(
    text: str, now: Callable[[], datetime] = datetime.now
) -> tuple[datetime, bool]:
    """Combine the first date and time tokens into one timestamp.

    Falls back to ``now()`` when the two cannot be combined; the second
    element of the result says whether the timestamp was actually read.
    """
    date_parts = _find_date(text)
    time_parts = _find_time(text)
    if date_parts and time_parts:
        try:
            return datetime(*date_parts, *time_parts), True
        except ValueError:
            logger.debug("Discarding impossible timestamp %s %s", date_parts, time_parts)
    return now(), False


def has_success_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in SUCCESS_KEYWORDS)


def detect_payment_status(text: str) -> PaymentStatus:
    if has_success_keyword(text):
        return PaymentStatus.SUCCESS
    lowered = text.lower()
    if any(word in lowered for word in FAILURE_KEYWORDS):
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def _fuzzy_app(text: str, threshold: int) -> Optional[UpiApp]:
    best_app: Optional[UpiApp] = None
    best_score = 0

    for line in text.lower().splitlines():
        tokens = re.findall(r"[a-z0-9|]+", line)
        # Single tokens and adjacent pairs ("phone pe" -> "phonepe")
        windows = tokens + ["".join(pair) for pair in zip(tokens, tokens[1:])]
        for window in windows:
            window = window.translate(OCR_LETTER_FIXES)
            if len(window) < 5:
                continue
            for name, app in FUZZY_APP_NAMES.items():
                score = fuzz.ratio(window, name)
                if score >= threshold and score > best_score:
                    best_app, best_score = app, score

    return best_app


def detect_source_app(text: str, fuzzy_threshold: int = 85) -> UpiApp:
    """Identify the payment app, tolerating OCR-garbled names."""
    # UPI handles such as "alice@paytm" say nothing about the payer's app
    scrubbed = UPI_ID_PATTERN.sub(" ", text)

    for app, pattern in APP_PATTERNS:
        if pattern.search(scrubbed):
            return app

    return _fuzzy_app(scrubbed, fuzzy_threshold) or UpiApp.OTHER


def detect_bank(text: str) -> Optional[str]:
    match = BANK_PATTERN.search(UPI_ID_PATTERN.sub(" ", text))
    return match.group(1).upper() if match else None


def parse_payment_text(
    text: str,
    now: Callable[[], datetime] = datetime.now,
    app_fuzzy_threshold: int = 85,
) -> ExtractedPaymentData:
    """Parse a screenshot transcript into ExtractedPaymentData.

    Raises:
        ParseError: when the amount or the counterparty identifier is absent.
    """
    amount = extract_amount(text)
    counterparty_id = extract_counterparty_id(text)

    missing: list[ParseField] = []
    if amount is None:
        missing.append(ParseField.MISSING_AMOUNT)
    if counterparty_id is None:
        missing.append(ParseField.MISSING_UPI_ID)
    if missing:
        raise ParseError(missing)

    occurred_at, timestamp_parsed = extract_timestamp(text, now=now)

    data = ExtractedPaymentData(
        amount=amount,
        counterparty_id=counterparty_id,
        transaction_ref=extract_transaction_ref(text),
        occurred_at=occurred_at,
        timestamp_parsed=timestamp_parsed,
        status_keyword_found=has_success_keyword(text),
        payment_status=detect_payment_status(text),
        source_app=detect_source_app(text, app_fuzzy_threshold),
        bank=detect_bank(text),
    )
    logger.debug(
        "Parsed amount=%s counterparty=%s ref=%s app=%s",
        data.amount,
        data.counterparty_id,
        data.transaction_ref,
        data.source_app.value,
    )
    return data
