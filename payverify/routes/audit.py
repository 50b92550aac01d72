"""Audit log endpoint for compliance review."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Query, Request

from payverify.models import AuditEntry
from payverify.verification.engine import VerificationEngine

router = APIRouter(prefix="/api")


def _get_engine(request: Request) -> VerificationEngine:
    return request.app.state.engine


@router.get("/audit", response_model=List[AuditEntry])
def get_audit_log(
    request: Request,
    settlement_id: Optional[str] = Query(default=None),
    from_date: Optional[datetime] = Query(default=None),
    to_date: Optional[datetime] = Query(default=None),
) -> List[AuditEntry]:
    """Retrieve audit log entries with optional filters.

    Filters:
      - settlement_id: exact match on a specific settlement
      - from_date: entries with timestamp >= this value (UTC if no offset)
      - to_date: entries with timestamp <= this value (UTC if no offset)
    """
    return _get_engine(request).get_audit_log(
        settlement_id=settlement_id,
        since=from_date,
        until=to_date,
    )
