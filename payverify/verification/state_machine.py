"""Verification state machine.

    PENDING -> AUTO_VERIFIED | AWAITING_RECEIVER_CONFIRMATION | AWAITING_MANUAL_REVIEW
            -> VERIFIED | DISPUTED | REJECTED   (terminal)

Every status change goes through ``transition``, which checks the
allowed-transition table. A terminal record is never changed again; a
fresh attempt gets a new record instead.
"""

from payverify.errors import IllegalTransitionError
from payverify.models import (
    RecommendedAction,
    RiskAssessment,
    RiskLevel,
    VerificationStatus,
)
from payverify.verification.scorer import WRONG_PARTY_FLAGS

S = VerificationStatus

TERMINAL_STATUSES = frozenset({S.VERIFIED, S.DISPUTED, S.REJECTED})

# Statuses in which the receiver may confirm or dispute. An auto-verified
# payment can still be corroborated or disputed by the receiver.
CONFIRMABLE_STATUSES = frozenset({S.AWAITING_RECEIVER_CONFIRMATION, S.AUTO_VERIFIED})

ALLOWED_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    S.PENDING: frozenset(
        {S.AUTO_VERIFIED, S.AWAITING_RECEIVER_CONFIRMATION, S.AWAITING_MANUAL_REVIEW}
    ),
    S.AUTO_VERIFIED: frozenset({S.VERIFIED, S.DISPUTED, S.REJECTED}),
    S.AWAITING_RECEIVER_CONFIRMATION: frozenset({S.VERIFIED, S.DISPUTED, S.REJECTED}),
    S.AWAITING_MANUAL_REVIEW: frozenset({S.VERIFIED, S.DISPUTED, S.REJECTED}),
    S.VERIFIED: frozenset(),
    S.DISPUTED: frozenset(),
    S.REJECTED: frozenset(),
}


def is_terminal(status: VerificationStatus) -> bool:
    return status in TERMINAL_STATUSES


def transition(
    current: VerificationStatus, target: VerificationStatus
) -> VerificationStatus:
    """Return ``target`` if the move is allowed, raise otherwise."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise IllegalTransitionError(
            f"Cannot move verification from {current.value} to {target.value}"
        )
    return target


def initial_status(assessment: RiskAssessment) -> VerificationStatus:
    """Where a freshly scored attempt goes.

    Zero-friction auto-verification only happens at a score of exactly 0;
    any other LOW score still waits for the receiver to corroborate.
    HIGH and CRITICAL always go to a human, even when the recommendation
    is REJECT.
    """
    if WRONG_PARTY_FLAGS.intersection(assessment.flags):
        return S.AWAITING_MANUAL_REVIEW
    if assessment.recommended_action == RecommendedAction.MANUAL_REVIEW:
        return S.AWAITING_MANUAL_REVIEW
    if assessment.level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        return S.AWAITING_MANUAL_REVIEW
    if assessment.level == RiskLevel.MEDIUM:
        return S.AWAITING_RECEIVER_CONFIRMATION
    if assessment.score == 0:
        return S.AUTO_VERIFIED
    return S.AWAITING_RECEIVER_CONFIRMATION


def next_steps_for(
    status: VerificationStatus, assessment: RiskAssessment
) -> list[str]:
    """Advisory steps for the settlement-status collaborator."""
    if status == S.AWAITING_RECEIVER_CONFIRMATION:
        return ["receiver_confirmation_request"]
    if status == S.AWAITING_MANUAL_REVIEW:
        steps = ["manual_review_required"]
        if assessment.recommended_action == RecommendedAction.REJECT:
            steps.append("reject_recommended")
        return steps
    if status in (S.AUTO_VERIFIED, S.VERIFIED):
        return ["update_settlement_completed"]
    if status == S.DISPUTED:
        return ["investigate_dispute"]
    if status == S.REJECTED:
        return ["notify_payer_rejected"]
    return []
