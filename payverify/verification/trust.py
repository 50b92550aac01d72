"""Trust-score impact of a verification outcome.

Penalties are larger than rewards, and unresolved outcomes carry no
impact.
"""

from payverify.models import RiskAssessment, RiskLevel, VerificationStatus
from payverify.verification.scorer import WRONG_PARTY_FLAGS

MIN_DELTA = -30
MAX_DELTA = 15


def trust_score_delta(
    status: VerificationStatus, assessment: RiskAssessment
) -> int:
    """Payer trust-score change for a record in ``status``."""
    if status == VerificationStatus.VERIFIED:
        if assessment.level == RiskLevel.LOW:
            delta = 15
        elif assessment.level == RiskLevel.MEDIUM:
            delta = 10
        else:
            # Cleared by a human despite a high score
            delta = 5
    elif status == VerificationStatus.AUTO_VERIFIED:
        delta = 10
    elif status == VerificationStatus.DISPUTED:
        delta = -30
    elif status == VerificationStatus.REJECTED:
        delta = -25 if WRONG_PARTY_FLAGS.intersection(assessment.flags) else -20
    else:
        delta = 0

    return max(MIN_DELTA, min(delta, MAX_DELTA))


def apply_trust_delta(current: int, delta: int, floor: int = 0, ceiling: int = 100) -> int:
    """Move a user's trust balance, keeping it inside [floor, ceiling]."""
    return max(floor, min(current + delta, ceiling))
