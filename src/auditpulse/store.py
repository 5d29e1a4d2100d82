"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     The Report Store: single-writer, session-scoped container that
             holds the current audit report snapshot.
--------------------------------------------------------------------------------
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional, Union

from .classifier import classify
from .config import DEFAULT_POLICY, ScoringPolicy
from .errors import AuditPulseError, IngestInProgressError, MalformedInputError
from .extractor import extract
from .models import AuditReport
from .normalizer import normalize
from .scoring import aggregate

logger = logging.getLogger(__name__)

Listener = Callable[[AuditReport], None]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportStore:
    """
    Holds one AuditReport at a time. `ingest` is the only write path and
    swaps in a complete snapshot or leaves the previous one untouched.
    """

    def __init__(self, policy: Optional[ScoringPolicy] = None, clock: Optional[Clock] = None):
        self.policy = policy or DEFAULT_POLICY
        self.clock = clock or utc_now
        self._state = AuditReport()
        self._last_error: Optional[AuditPulseError] = None
        self._listeners: List[Listener] = []
        self._in_flight = threading.Lock()

    @property
    def last_error(self) -> Optional[AuditPulseError]:
        return self._last_error

    def get_state(self) -> AuditReport:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def ingest(self, raw: Union[str, Mapping, list], contract_hash: Optional[str] = None) -> bool:
        """
        Normalize → Extract → Classify → Aggregate, then replace the snapshot.
        Failures are recorded in `last_error` instead of being raised.
        """
        if not self._in_flight.acquire(blocking=False):
            logger.warning("Rejected ingest: another report is still being processed")
            self._last_error = IngestInProgressError()
            return False

        try:
            try:
                normalized = normalize(raw)
            except MalformedInputError as e:
                logger.error(f"Audit report rejected: {e.reason}")
                self._last_error = e
                return False

            drafts = extract(normalized, self.policy)
            issues = tuple(classify(d, self.policy) for d in drafts)
            result = aggregate(issues, self.policy)

            if normalized.reported_score is not None and normalized.reported_score != result.audit_score:
                logger.info(
                    f"Engine reported score {normalized.reported_score}, "
                    f"computed {result.audit_score}; using the computed score"
                )
            if not issues:
                logger.info("No structured issues parsed; raw report kept for fallback display")

            snapshot = AuditReport(
                raw_text=normalized.raw_text,
                issues=issues,
                audit_score=result.audit_score,
                contract_hash=contract_hash or normalized.contract_hash,
                issue_count=result.issue_count,
                ingested_at=self.clock(),
            )
            # Single reference swap: readers see the old or the new snapshot, never a mix
            self._state = snapshot
            self._last_error = None
            logger.debug(f"Ingested report: {len(issues)} issues, score {result.audit_score}")

            # Still inside the guard, so a listener cannot re-enter ingest
            self._notify(snapshot)
            return True
        finally:
            self._in_flight.release()

    def clear(self):
        """Discard the session's report (navigation away / reload)."""
        self._state = AuditReport()
        self._last_error = None

    def _notify(self, snapshot: AuditReport):
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Report listener {listener!r} failed")
