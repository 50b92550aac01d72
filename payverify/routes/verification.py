"""Verification endpoints: start, inspect, confirm and override.

Handlers are plain ``def`` so FastAPI runs them in its threadpool; OCR
blocks, and concurrent requests for one settlement meet at the engine's
per-settlement lock.
"""

from typing import List

from fastapi import APIRouter, Query, Request

from payverify.models import (
    ManualOverrideRequest,
    ReceiverConfirmationRequest,
    VerificationRecord,
    VerificationRequest,
    VerificationResponse,
)
from payverify.verification.engine import VerificationEngine

router = APIRouter(prefix="/api")


def _get_engine(request: Request) -> VerificationEngine:
    """Retrieve the verification engine from application state."""
    return request.app.state.engine


@router.post("/verifications", response_model=VerificationResponse, status_code=201)
def start_verification(
    verification: VerificationRequest,
    request: Request,
) -> VerificationResponse:
    """Verify a settlement payment from a screenshot or its transcript."""
    record = _get_engine(request).start_verification(verification)
    return VerificationResponse.from_record(record)


# Declared before /verifications/{settlement_id} so "suspicious" is not taken as an id
@router.get("/verifications/suspicious", response_model=List[VerificationRecord])
def list_suspicious(
    request: Request,
    days: int = Query(default=7, ge=1, le=365),
) -> List[VerificationRecord]:
    """Recent high-risk, disputed or wrong-party verifications."""
    return _get_engine(request).list_suspicious(days)


@router.get("/verifications/{settlement_id}", response_model=VerificationResponse)
def get_verification(settlement_id: str, request: Request) -> VerificationResponse:
    """Current status of the latest verification attempt."""
    record = _get_engine(request).get_status(settlement_id)
    return VerificationResponse.from_record(record)


@router.get(
    "/verifications/{settlement_id}/history",
    response_model=List[VerificationRecord],
)
def get_verification_history(
    settlement_id: str, request: Request
) -> List[VerificationRecord]:
    """Every attempt for a settlement, oldest first, with full evidence."""
    return _get_engine(request).get_history(settlement_id)


@router.post(
    "/verifications/{settlement_id}/confirmation",
    response_model=VerificationResponse,
)
def submit_confirmation(
    settlement_id: str,
    confirmation: ReceiverConfirmationRequest,
    request: Request,
) -> VerificationResponse:
    """Receiver confirms the money arrived, or disputes it with a reason."""
    record = _get_engine(request).submit_receiver_confirmation(
        settlement_id,
        receiver_id=confirmation.receiver_id,
        confirmed=confirmation.confirmed,
        reason=confirmation.reason,
    )
    return VerificationResponse.from_record(record)


@router.post(
    "/verifications/{settlement_id}/override",
    response_model=VerificationResponse,
)
def apply_override(
    settlement_id: str,
    override: ManualOverrideRequest,
    request: Request,
) -> VerificationResponse:
    """Admin forces the outcome of a verification awaiting a decision."""
    record = _get_engine(request).apply_manual_override(
        settlement_id,
        admin_id=override.admin_id,
        outcome=override.outcome,
        notes=override.notes,
    )
    return VerificationResponse.from_record(record)
