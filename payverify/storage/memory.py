"""In-memory storage for verification records, audit logs and trust scores.

Records are kept per settlement as an append-only list of attempts; only
the latest attempt can be updated, and every update must name the
version it was based on (optimistic concurrency). Callers always get
deep copies, so nothing outside the store can mutate a stored record.
All data lives in memory and is lost on restart.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from payverify.errors import ConcurrentModificationError
from payverify.models import AuditEntry, VerificationRecord
from payverify.verification.trust import apply_trust_delta


def _normalize_key(key: str) -> str:
    """Normalize an id to a consistent dict key (stripped)."""
    return key.strip()


class MemoryStore:
    """Thread-safe in-memory store for verification records and audit entries."""

    def __init__(self, initial_trust_score: int = 50) -> None:
        # Attempts indexed by settlement id, oldest first
        self._records: Dict[str, List[VerificationRecord]] = {}
        # Chronological audit log
        self._audit_log: List[AuditEntry] = []
        self._trust_scores: Dict[str, int] = {}
        self._initial_trust_score = initial_trust_score
        self._lock = threading.Lock()

    def next_attempt(self, settlement_id: str) -> int:
        with self._lock:
            return len(self._records.get(_normalize_key(settlement_id), [])) + 1

    def add(self, record: VerificationRecord) -> VerificationRecord:
        """Append a new attempt. Earlier attempts are kept for audit."""
        key = _normalize_key(record.settlement_id)
        with self._lock:
            attempts = self._records.setdefault(key, [])
            if record.attempt != len(attempts) + 1:
                raise ConcurrentModificationError(
                    f"Attempt {record.attempt} for settlement "
                    f"{record.settlement_id} is out of sequence"
                )
            stored = record.model_copy(deep=True)
            attempts.append(stored)
            return stored.model_copy(deep=True)

    def save(
        self, record: VerificationRecord, expected_version: int
    ) -> VerificationRecord:
        """Replace the latest attempt if nobody changed it since ``expected_version``."""
        key = _normalize_key(record.settlement_id)
        with self._lock:
            attempts = self._records.get(key)
            if not attempts:
                raise ConcurrentModificationError(
                    f"No stored verification for settlement {record.settlement_id}"
                )
            latest = attempts[-1]
            if latest.attempt != record.attempt or latest.version != expected_version:
                raise ConcurrentModificationError(
                    f"Verification for settlement {record.settlement_id} changed "
                    f"(attempt {latest.attempt}, version {latest.version}); "
                    f"reload and retry"
                )
            stored = record.model_copy(
                update={"version": expected_version + 1}, deep=True
            )
            attempts[-1] = stored
            return stored.model_copy(deep=True)

    def get_latest(self, settlement_id: str) -> Optional[VerificationRecord]:
        with self._lock:
            attempts = self._records.get(_normalize_key(settlement_id))
            if not attempts:
                return None
            return attempts[-1].model_copy(deep=True)

    def get_history(self, settlement_id: str) -> List[VerificationRecord]:
        with self._lock:
            attempts = self._records.get(_normalize_key(settlement_id), [])
            return [r.model_copy(deep=True) for r in attempts]

    def get_all(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[VerificationRecord]:
        """Return the latest attempt of every settlement, optionally by creation time."""
        results: List[VerificationRecord] = []
        with self._lock:
            for attempts in self._records.values():
                latest = attempts[-1]
                if since is not None and latest.created_at < since:
                    continue
                if until is not None and latest.created_at > until:
                    continue
                results.append(latest.model_copy(deep=True))
        return results

    def add_audit(self, entry: AuditEntry) -> None:
        """Append an entry to the audit log."""
        with self._lock:
            self._audit_log.append(entry)

    def get_audit_log(
        self,
        settlement_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[AuditEntry]:
        """Return audit entries, optionally filtered by settlement ID and/or time range."""
        results: List[AuditEntry] = []
        with self._lock:
            for entry in self._audit_log:
                if settlement_id is not None and entry.settlement_id != settlement_id:
                    continue
                if since is not None and entry.timestamp < since:
                    continue
                if until is not None and entry.timestamp > until:
                    continue
                results.append(entry)
        return results

    def get_trust_score(self, user_id: str) -> int:
        with self._lock:
            return self._trust_scores.get(
                _normalize_key(user_id), self._initial_trust_score
            )

    def adjust_trust_score(self, user_id: str, delta: int) -> int:
        """Move a user's trust balance by ``delta`` and return the new value."""
        key = _normalize_key(user_id)
        with self._lock:
            current = self._trust_scores.get(key, self._initial_trust_score)
            updated = apply_trust_delta(current, delta)
            self._trust_scores[key] = updated
            return updated
