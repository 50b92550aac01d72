"""Transaction reference rule.

Real UPI references (UTRs) are 12-digit numbers or long app-specific
tokens. Hand-made screenshots tend to carry placeholder references:
TEST/DEMO prefixes, keyboard runs such as 123456, or one repeated digit.
A missing reference is recorded but not scored; several apps hide it
behind a "details" tap.
"""

import re
from typing import Optional

from payverify.models import FlagCode, RuleResult

SYNTHETIC_REFERENCE_PATTERNS = [
    re.compile(r"^(?:TEST|SAMPLE|FAKE|DEMO|DUMMY)", re.IGNORECASE),
    re.compile(r"^\d{6}$"),
    re.compile(r"123456|987654|abcdef", re.IGNORECASE),
    re.compile(r"^(.)\1+$"),  # 000000, 1111111111
]


def is_synthetic_reference(reference: str) -> bool:
    return any(pattern.search(reference) for pattern in SYNTHETIC_REFERENCE_PATTERNS)


def check_transaction_ref(reference: Optional[str], weight: int) -> RuleResult:
    if reference is None:
        return RuleResult(
            score_delta=0,
            reasons=["No transaction reference found on the screenshot"],
            flags=[FlagCode.MISSING_TRANSACTION_REF],
        )

    if is_synthetic_reference(reference):
        return RuleResult(
            score_delta=weight,
            reasons=[f"Transaction reference '{reference}' looks synthetic"],
            flags=[FlagCode.SUSPICIOUS_TRANSACTION_ID],
        )

    return RuleResult(score_delta=0, reasons=[], flags=[])
