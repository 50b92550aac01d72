"""Verification orchestrator.

One entry point per external trigger:

  - start_verification: extract -> parse -> score -> decide -> persist
  - submit_receiver_confirmation: receiver confirms or disputes
  - apply_manual_override: admin forces an outcome

Unreadable evidence never fails a request; it degrades to a record in
AWAITING_MANUAL_REVIEW flagged MISSING_DATA. Mutations on one settlement
are serialised with a striped lock, and the store rejects stale writes
on top of that. A settlement takes a new attempt only once its latest
one is terminal.
"""

import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from payverify.errors import (
    ExtractionFailure,
    NotApplicableError,
    ParseError,
    ValidationError,
    VerificationNotFoundError,
)
from payverify.extraction.ocr import TextExtractor, decode_base64_image
from payverify.models import (
    AuditEntry,
    FlagCode,
    OverrideOutcome,
    RiskAssessment,
    TrustScore,
    VerificationConfig,
    VerificationEvidence,
    VerificationMethod,
    VerificationRecord,
    VerificationRequest,
    VerificationStats,
    VerificationStatus,
)
from payverify.storage.memory import MemoryStore
from payverify.verification.parser import parse_payment_text
from payverify.verification.rules.counterparty import counterparty_similarity
from payverify.verification.scorer import WRONG_PARTY_FLAGS, assess, assess_unusable
from payverify.verification.state_machine import (
    CONFIRMABLE_STATUSES,
    initial_status,
    is_terminal,
    next_steps_for,
    transition,
)
from payverify.verification.trust import trust_score_delta

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64

UPI_ID_FORMAT = re.compile(r"^[a-zA-Z0-9.\-_]+@[a-zA-Z]+(?:\.\w+)?$")

OVERRIDE_TARGETS = {
    OverrideOutcome.VERIFIED: VerificationStatus.VERIFIED,
    OverrideOutcome.FALSE_POSITIVE: VerificationStatus.VERIFIED,
    OverrideOutcome.REJECTED: VerificationStatus.REJECTED,
    OverrideOutcome.DISPUTED: VerificationStatus.DISPUTED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _with_flag(assessment: RiskAssessment, flag: FlagCode) -> RiskAssessment:
    if flag in assessment.flags:
        return assessment
    return assessment.model_copy(update={"flags": [*assessment.flags, flag]})


class VerificationEngine:
    """Orchestrates payment verification for settlements."""

    def __init__(
        self,
        store: MemoryStore,
        config: VerificationConfig,
        extractor: Optional[TextExtractor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self.extractor = extractor
        self.clock = clock
        # Striped: settlements sharing a stripe also share a lock
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start_verification(self, request: VerificationRequest) -> VerificationRecord:
        """Run a new verification attempt for a settlement.

        Raises ValidationError for unusable input, and NotApplicableError
        while the settlement's latest attempt is still open; nothing is
        stored then. Every other outcome, OCR and parse failures included,
        is a stored record.

        A payer's reward from an earlier attempt on the same settlement is
        replaced by the new attempt's impact; penalties stay.
        """
        self._validate(request)
        self._require_no_open_attempt(request.settlement_id)

        # OCR can be slow; score before taking the settlement lock
        assessment, evidence = self._evaluate(request)

        with self._lock_for(request.settlement_id):
            # Re-checked under the lock: another attempt may have started meanwhile
            previous = self._require_no_open_attempt(request.settlement_id)
            now = self.clock()
            record = VerificationRecord(
                settlement_id=request.settlement_id,
                attempt=self.store.next_attempt(request.settlement_id),
                payer_id=request.payer_id,
                receiver_id=request.receiver_id,
                expected_amount=request.expected_amount,
                expected_counterparty_id=request.expected_counterparty_id,
                status=VerificationStatus.PENDING,
                method=VerificationMethod.OCR,
                risk_assessment=assessment,
                evidence=evidence,
                created_at=now,
                updated_at=now,
            )
            status = transition(record.status, initial_status(assessment))
            record = record.model_copy(
                update=self._resolution_fields(status, assessment, now)
            )

            stored = self.store.add(record)
            if previous is not None and previous.payer_id and previous.trust_score_impact > 0:
                self.store.adjust_trust_score(
                    previous.payer_id, -previous.trust_score_impact
                )
            if stored.payer_id and stored.trust_score_impact:
                self.store.adjust_trust_score(stored.payer_id, stored.trust_score_impact)
            self.store.add_audit(
                AuditEntry(
                    settlement_id=stored.settlement_id,
                    attempt=stored.attempt,
                    timestamp=now,
                    action="VERIFICATION_STARTED",
                    performed_by=stored.payer_id or "system",
                    from_status=VerificationStatus.PENDING,
                    to_status=stored.status,
                    notes="; ".join(assessment.reasons) or None,
                )
            )

        logger.info(
            "Settlement %s attempt %d: score=%d level=%s action=%s status=%s",
            stored.settlement_id,
            stored.attempt,
            assessment.score,
            assessment.level.value,
            assessment.recommended_action.value,
            stored.status.value,
        )
        return stored

    def submit_receiver_confirmation(
        self,
        settlement_id: str,
        receiver_id: str,
        confirmed: bool,
        reason: Optional[str] = None,
    ) -> VerificationRecord:
        """Record the receiver confirming or disputing the payment."""
        with self._lock_for(settlement_id):
            record = self._require_latest(settlement_id)

            if record.status not in CONFIRMABLE_STATUSES:
                raise NotApplicableError(
                    f"Settlement {settlement_id} is {record.status.value}; "
                    f"receiver confirmation is not expected"
                )
            if receiver_id.strip() != record.receiver_id:
                raise NotApplicableError(
                    f"User {receiver_id} is not the receiver of settlement {settlement_id}"
                )
            if not confirmed and not (reason and reason.strip()):
                raise ValidationError("A reason is required to dispute a payment")

            target = VerificationStatus.VERIFIED if confirmed else VerificationStatus.DISPUTED
            status = transition(record.status, target)
            assessment = record.risk_assessment
            if not confirmed:
                assessment = _with_flag(assessment, FlagCode.RECEIVER_DISPUTED)

            now = self.clock()
            updated = record.model_copy(
                update={
                    "method": VerificationMethod.RECEIVER_CONFIRMED,
                    "risk_assessment": assessment,
                    "receiver_confirmed": confirmed,
                    "receiver_disputed": not confirmed,
                    "dispute_reason": None if confirmed else reason.strip(),
                    "resolved_by": receiver_id,
                    **self._resolution_fields(status, assessment, now),
                }
            )
            return self._commit(
                record,
                updated,
                action="RECEIVER_CONFIRMED" if confirmed else "RECEIVER_DISPUTED",
                performed_by=receiver_id,
                notes=reason,
            )

    def apply_manual_override(
        self,
        settlement_id: str,
        admin_id: str,
        outcome: OverrideOutcome,
        notes: str = "",
    ) -> VerificationRecord:
        """Force an outcome on a non-terminal record (admin action)."""
        if not admin_id or not admin_id.strip():
            raise ValidationError("admin_id is required for a manual override")

        with self._lock_for(settlement_id):
            record = self._require_latest(settlement_id)
            if is_terminal(record.status):
                raise NotApplicableError(
                    f"Settlement {settlement_id} is already {record.status.value}"
                )

            status = transition(record.status, OVERRIDE_TARGETS[outcome])
            assessment = record.risk_assessment
            if outcome == OverrideOutcome.FALSE_POSITIVE:
                assessment = _with_flag(assessment, FlagCode.FALSE_POSITIVE)
            elif outcome == OverrideOutcome.DISPUTED:
                assessment = _with_flag(assessment, FlagCode.MANUALLY_DISPUTED)

            now = self.clock()
            updated = record.model_copy(
                update={
                    "method": VerificationMethod.MANUAL_OVERRIDE,
                    "risk_assessment": assessment,
                    "false_positive": outcome == OverrideOutcome.FALSE_POSITIVE,
                    "resolved_by": admin_id,
                    "resolution_notes": notes or None,
                    **self._resolution_fields(status, assessment, now),
                }
            )
            return self._commit(
                record,
                updated,
                action="MANUAL_OVERRIDE",
                performed_by=admin_id,
                notes=f"{outcome.value}: {notes}" if notes else outcome.value,
            )

    def get_status(self, settlement_id: str) -> VerificationRecord:
        """Latest verification attempt for a settlement."""
        return self._require_latest(settlement_id)

    def get_history(self, settlement_id: str) -> list[VerificationRecord]:
        history = self.store.get_history(settlement_id)
        if not history:
            raise VerificationNotFoundError(
                f"No verification found for settlement {settlement_id}"
            )
        return history

    def get_audit_log(
        self,
        settlement_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[AuditEntry]:
        """Audit entries, optionally for one settlement and/or a time range.

        Naive datetimes are taken to be UTC.
        """
        return self.store.get_audit_log(
            settlement_id=settlement_id.strip() if settlement_id else None,
            since=_as_utc(since),
            until=_as_utc(until),
        )

    def get_trust_score(self, user_id: str) -> TrustScore:
        return TrustScore(user_id=user_id, score=self.store.get_trust_score(user_id))

    def get_stats(self) -> VerificationStats:
        """Distribution of outcomes across the latest attempt of every settlement."""
        records = self.store.get_all()
        total = len(records)

        by_status = {status.value: 0 for status in VerificationStatus}
        by_risk_level: Dict[str, int] = {}
        by_method: Dict[str, int] = {}
        score_sum = 0
        for record in records:
            by_status[record.status.value] += 1
            level = record.risk_assessment.level.value
            by_risk_level[level] = by_risk_level.get(level, 0) + 1
            by_method[record.method.value] = by_method.get(record.method.value, 0) + 1
            score_sum += record.risk_assessment.score

        verified = by_status["VERIFIED"] + by_status["AUTO_VERIFIED"]
        caught = by_status["DISPUTED"] + by_status["REJECTED"]

        return VerificationStats(
            total=total,
            by_status=by_status,
            by_risk_level=by_risk_level,
            by_method=by_method,
            success_rate=round(verified / total * 100, 2) if total else 0.0,
            fraud_detection_rate=round(caught / total * 100, 2) if total else 0.0,
            average_risk_score=round(score_sum / total, 2) if total else 0.0,
        )

    def list_suspicious(self, days: int = 7) -> list[VerificationRecord]:
        """Recent verifications worth a second look, highest score first."""
        since = self.clock() - timedelta(days=days)
        suspicious = [
            record
            for record in self.store.get_all(since=since)
            if record.risk_assessment.score >= self.config.high_threshold
            or record.receiver_disputed
            or WRONG_PARTY_FLAGS.intersection(record.risk_assessment.flags)
        ]
        return sorted(
            suspicious, key=lambda r: r.risk_assessment.score, reverse=True
        )

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _validate(self, request: VerificationRequest) -> None:
        if not request.settlement_id.strip():
            raise ValidationError("settlement_id is required")
        if not request.receiver_id.strip():
            raise ValidationError("receiver_id is required")
        amount = request.expected_amount
        if not amount.is_finite() or amount <= 0:
            raise ValidationError(
                f"Expected amount must be a positive number, got {amount}"
            )
        if not UPI_ID_FORMAT.match(request.expected_counterparty_id.strip()):
            raise ValidationError(
                f"Malformed UPI ID: '{request.expected_counterparty_id}'"
            )

        evidence = request.evidence
        has_text = bool(evidence.text and evidence.text.strip())
        has_image = bool(evidence.image_base64 and evidence.image_base64.strip())
        if has_text == has_image:
            raise ValidationError(
                "Evidence must contain exactly one of 'text' or 'image_base64'"
            )

    def _read_evidence(
        self, request: VerificationRequest
    ) -> tuple[Optional[str], Optional[float], Optional[str]]:
        """Return (text, ocr_confidence, extraction_error) for the evidence."""
        if request.evidence.text:
            return request.evidence.text, None, None

        if self.extractor is None:
            return None, None, "no OCR engine configured"

        try:
            image_bytes = decode_base64_image(request.evidence.image_base64)
            result = self.extractor.extract_text(
                image_bytes, timeout=self.config.ocr_timeout_seconds
            )
        except ExtractionFailure as exc:
            logger.warning(
                "Evidence for settlement %s unreadable, routing to manual review: %s",
                request.settlement_id,
                exc.message,
            )
            return None, None, exc.message

        return result.text, result.confidence, None

    def _evaluate(
        self, request: VerificationRequest
    ) -> tuple[RiskAssessment, VerificationEvidence]:
        text, ocr_confidence, extraction_error = self._read_evidence(request)

        if extraction_error is not None:
            assessment = assess_unusable(self.config, extraction_error=extraction_error)
            return assessment, VerificationEvidence(extraction_error=extraction_error)

        try:
            extracted = parse_payment_text(
                text, app_fuzzy_threshold=self.config.app_fuzzy_threshold
            )
        except ParseError as exc:
            logger.warning(
                "Evidence for settlement %s incomplete, routing to manual review: %s",
                request.settlement_id,
                exc.message,
            )
            assessment = assess_unusable(
                self.config, raw_text=text, missing_fields=exc.missing
            )
            return assessment, VerificationEvidence(
                raw_text=text,
                ocr_confidence=ocr_confidence or 0.0,
                missing_fields=exc.missing,
            )

        assessment = assess(
            extracted,
            request.expected_amount,
            request.expected_counterparty_id,
            text,
            self.config,
            ocr_confidence=ocr_confidence,
        )
        evidence = VerificationEvidence(
            raw_text=text,
            ocr_confidence=assessment.confidence,
            extracted=extracted,
            counterparty_similarity=counterparty_similarity(
                extracted.counterparty_id, request.expected_counterparty_id
            ),
        )
        return assessment, evidence

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_for(self, settlement_id: str) -> threading.Lock:
        return self._locks[hash(settlement_id.strip()) % len(self._locks)]

    def _require_no_open_attempt(
        self, settlement_id: str
    ) -> Optional[VerificationRecord]:
        """Return the latest attempt, refusing a new one while it is unresolved."""
        latest = self.store.get_latest(settlement_id)
        if latest is not None and not is_terminal(latest.status):
            raise NotApplicableError(
                f"Settlement {settlement_id} already has an open verification "
                f"(attempt {latest.attempt}, {latest.status.value})"
            )
        return latest

    def _require_latest(self, settlement_id: str) -> VerificationRecord:
        record = self.store.get_latest(settlement_id)
        if record is None:
            raise VerificationNotFoundError(
                f"No verification found for settlement {settlement_id}"
            )
        return record

    def _resolution_fields(
        self,
        status: VerificationStatus,
        assessment: RiskAssessment,
        now: datetime,
    ) -> dict:
        resolved = is_terminal(status) or status == VerificationStatus.AUTO_VERIFIED
        return {
            "status": status,
            "trust_score_impact": trust_score_delta(status, assessment),
            "next_steps": next_steps_for(status, assessment),
            "updated_at": now,
            "resolved_at": now if resolved else None,
        }

    def _commit(
        self,
        before: VerificationRecord,
        after: VerificationRecord,
        action: str,
        performed_by: str,
        notes: Optional[str],
    ) -> VerificationRecord:
        """Persist a transition, move the payer's trust balance, and audit it."""
        stored = self.store.save(after, expected_version=before.version)

        delta = stored.trust_score_impact - before.trust_score_impact
        if stored.payer_id and delta:
            self.store.adjust_trust_score(stored.payer_id, delta)

        self.store.add_audit(
            AuditEntry(
                settlement_id=stored.settlement_id,
                attempt=stored.attempt,
                timestamp=stored.updated_at,
                action=action,
                performed_by=performed_by,
                from_status=before.status,
                to_status=stored.status,
                notes=notes,
            )
        )
        logger.info(
            "Settlement %s attempt %d: %s -> %s by %s (%s)",
            stored.settlement_id,
            stored.attempt,
            before.status.value,
            stored.status.value,
            performed_by,
            action,
        )
        return stored
