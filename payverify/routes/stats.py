"""Aggregate statistics and per-user trust scores."""

from fastapi import APIRouter, Request

from payverify.models import TrustScore, VerificationStats

router = APIRouter(prefix="/api")


@router.get("/stats", response_model=VerificationStats)
def get_stats(request: Request) -> VerificationStats:
    """Outcome distribution across the latest attempt of every settlement."""
    return request.app.state.engine.get_stats()


@router.get("/trust/{user_id}", response_model=TrustScore)
def get_trust_score(user_id: str, request: Request) -> TrustScore:
    """Current trust balance of a user (starts at the configured default)."""
    return request.app.state.engine.get_trust_score(user_id)
