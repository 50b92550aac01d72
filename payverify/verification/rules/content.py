"""Screenshot content rules.

These look at the transcript as a whole rather than at parsed fields:

  - success keyword: a genuine receipt says the payment succeeded
  - canonical patterns: a real UPI receipt carries most of a handful of
    fixtures (the word "payment", an amount, a "to" line, a reference
    label, a date, a UPI/bank mention); a doctored or unrelated image
    usually carries few of them
  - editing markers: words and markup that only appear in mock-ups,
    templates, or text pasted through an editor
"""

import re

from payverify.models import FlagCode, RuleResult
from payverify.verification.parser import has_success_keyword

CANONICAL_PATTERNS = [
    re.compile(r"payment", re.IGNORECASE),
    re.compile(r"(?:amount|₹|\brs\.?|\binr\b)[^\d\n]{0,20}\d", re.IGNORECASE),
    re.compile(r"\bto\b:?\s*[\w.@]+", re.IGNORECASE),
    re.compile(r"\b(?:ref|id|transaction|txn|utr)\b", re.IGNORECASE),
    re.compile(r"\d{1,2}[/\-]\d{1,2}"),
    re.compile(r"upi|bank", re.IGNORECASE),
]

EDITING_MARKERS = [
    re.compile(r"\b(?:edited|modified|altered|fake|dummy|sample)\b", re.IGNORECASE),
    re.compile(r"<[^>]+>"),  # HTML tags
    re.compile(r"\d{20,}"),  # runs of digits no app prints
]


def count_canonical_patterns(text: str) -> int:
    return sum(1 for pattern in CANONICAL_PATTERNS if pattern.search(text))


def check_success_keyword(text: str, weight: int) -> RuleResult:
    if has_success_keyword(text):
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=["Screenshot does not say the payment succeeded"],
        flags=[FlagCode.MISSING_SUCCESS_INDICATOR],
    )


def check_canonical_patterns(text: str, min_count: int, weight: int) -> RuleResult:
    """Flag transcripts carrying fewer than ``min_count`` receipt fixtures."""
    found = count_canonical_patterns(text)
    if found >= min_count:
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=[
            f"Only {found} of {len(CANONICAL_PATTERNS)} usual payment "
            f"receipt elements found (need {min_count})"
        ],
        flags=[FlagCode.MISSING_UPI_PATTERNS],
    )


def check_editing_markers(text: str, weight: int) -> RuleResult:
    if not any(pattern.search(text) for pattern in EDITING_MARKERS):
        return RuleResult(score_delta=0, reasons=[], flags=[])

    return RuleResult(
        score_delta=weight,
        reasons=["Screenshot text contains signs of editing or a mock-up"],
        flags=[FlagCode.POSSIBLE_EDITING],
    )
