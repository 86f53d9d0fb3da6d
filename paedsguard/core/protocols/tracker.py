"""
Protocol State Tracker

Drives one AdherenceRecord per (patient, protocol) run through

    started → in_progress → completed | abandoned

and resolves decision-point branches between steps.

Concurrency: calls against the same record id are serialized by a per-record
lock and persisted with the store's compare-and-swap, so steps_completed
only ever grows. Calls against different record ids never share a lock.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from paedsguard.utils import (
    get_logger,
    ConcurrentUpdateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .model import (
    AdherenceProgress,
    AdherenceRecord,
    AdherenceStats,
    BranchResult,
    Decision,
    DecisionPoint,
    ProtocolCatalog,
    ProtocolOutcome,
    default_protocol_catalog,
    parse_enum,
)
from .stats import page_history, summarise_adherence
from .store import AdherenceStore, InMemoryAdherenceStore
from .transitions import (
    AdherenceEvent,
    ProtocolAbandoned,
    ProtocolEnded,
    StepCompleted,
    apply_event,
    require_open,
)

logger = get_logger(__name__)

PROTOCOL_COMPLETE = "Protocol complete"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RecordLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class ProtocolTracker:
    """
    Stateful façade over the adherence store.

    Args:
        catalog: Protocol definitions; packaged catalog if None.
        store:   Adherence record store; a fresh in-memory store if None.
        clock:   Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        catalog: Optional[ProtocolCatalog] = None,
        store: Optional[AdherenceStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.catalog = catalog if catalog is not None else default_protocol_catalog()
        self.store = store if store is not None else InMemoryAdherenceStore()
        self._clock = clock
        # Entries live only while a call on that record is in flight.
        self._record_locks: Dict[str, _RecordLock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Record lifecycle
    # ------------------------------------------------------------------

    def start_protocol(
        self,
        patient_id: Union[str, int],
        protocol_id: str,
        provider_id: Optional[Union[str, int]] = None,
    ) -> str:
        """Create a new run in ``started`` state and return its record id."""
        if patient_id is None or str(patient_id).strip() == "":
            raise ValidationError("patient_id is required", field="patient_id")

        protocol = self.catalog.get(protocol_id)
        record = AdherenceRecord(
            record_id=uuid.uuid4().hex,
            patient_id=str(patient_id),
            protocol_id=protocol.id.value,
            provider_id=str(provider_id) if provider_id is not None else None,
            total_steps=protocol.total_steps,
            start_time=self._clock(),
        )
        self.store.insert(record)
        logger.info(
            f"Protocol run {record.record_id} started: {protocol.id.value} "
            f"for patient {record.patient_id} ({protocol.total_steps} steps)"
        )
        return record.record_id

    def complete_step(
        self,
        record_id: str,
        step_number: int,
        notes: Optional[str] = None,
    ) -> AdherenceProgress:
        record = self._update(record_id, StepCompleted(step_number, notes))
        logger.debug(
            f"Protocol run {record_id}: step {step_number} done, "
            f"{record.steps_completed}/{record.total_steps} ({record.adherence_score}%)"
        )
        return AdherenceProgress.of(record)

    def end_protocol(
        self,
        record_id: str,
        outcome: Union[str, ProtocolOutcome],
        notes: Optional[str] = None,
    ) -> AdherenceProgress:
        """
        Terminal: no step or outcome updates are accepted afterwards.

        A run that has already ended raises InvalidStateError before the
        outcome is parsed.
        """
        require_open(self.get_record(record_id), "end protocol")
        outcome = parse_enum(ProtocolOutcome, outcome, "outcome")
        record = self._update(record_id, ProtocolEnded(outcome, self._clock(), notes))
        logger.info(
            f"Protocol run {record_id} completed: outcome={outcome.value}, "
            f"adherence={record.adherence_score}%"
        )
        return AdherenceProgress.of(record)

    def abandon_protocol(self, record_id: str, notes: Optional[str] = None) -> AdherenceProgress:
        record = self._update(record_id, ProtocolAbandoned(self._clock(), notes))
        logger.warning(
            f"Protocol run {record_id} abandoned at step "
            f"{record.steps_completed}/{record.total_steps}"
        )
        return AdherenceProgress.of(record)

    def get_record(self, record_id: str) -> AdherenceRecord:
        record = self.store.get(record_id)
        if record is None:
            raise NotFoundError(f"Unknown adherence record '{record_id}'", kind="adherence_record", identifier=record_id)
        return record

    # ------------------------------------------------------------------
    # Step traversal
    # ------------------------------------------------------------------

    def get_decision_point(self, step_id: str) -> Optional[DecisionPoint]:
        return self.catalog.locate(step_id).decision_point

    def get_decision_branch(self, step_id: str, decision: Union[str, Decision]) -> BranchResult:
        """
        Resolve a yes/no finding at ``step_id``.

        Raises:
            NotFoundError:     unknown step.
            InvalidStateError: the step has no decision point (advance linearly).
            ValidationError:   decision is not yes/no.
        """
        decision = parse_enum(Decision, decision, "decision")
        location = self.catalog.locate(step_id)
        dp = location.decision_point
        if dp is None:
            raise InvalidStateError(
                f"Step '{step_id}' has no decision point",
                state="no_decision_point",
                details={"step_id": step_id},
            )

        target = dp.target(decision)
        if target is None:
            return BranchResult(protocol_complete=True, message=PROTOCOL_COMPLETE)

        return BranchResult(protocol_complete=False, next_step=self.catalog.locate(target).step)

    def next_linear_step(self, step_id: str) -> BranchResult:
        """Step ``step_number + 1`` of the same protocol, or completion after the last."""
        location = self.catalog.locate(step_id)
        steps = location.protocol.steps
        next_number = location.step.step_number + 1
        if next_number > len(steps):
            return BranchResult(protocol_complete=True, message=PROTOCOL_COMPLETE)
        return BranchResult(protocol_complete=False, next_step=steps[next_number - 1])

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def adherence_stats(self, provider_id: Optional[Union[str, int]] = None) -> AdherenceStats:
        key = str(provider_id) if provider_id is not None else None
        return summarise_adherence(self.store.list_by_provider(key))

    def adherence_history(
        self,
        provider_id: Optional[Union[str, int]] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[AdherenceRecord]:
        key = str(provider_id) if provider_id is not None else None
        return page_history(self.store.list_by_provider(key), limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _checkout_lock(self, record_id: str) -> threading.Lock:
        """The record's lock, shared by every caller until all have checked in."""
        with self._registry_lock:
            entry = self._record_locks.get(record_id)
            if entry is None:
                entry = self._record_locks[record_id] = _RecordLock()
            entry.holders += 1
            return entry.lock

    def _checkin_lock(self, record_id: str) -> None:
        with self._registry_lock:
            entry = self._record_locks[record_id]
            entry.holders -= 1
            if entry.holders == 0:
                del self._record_locks[record_id]

    def _update(self, record_id: str, event: AdherenceEvent) -> AdherenceRecord:
        lock = self._checkout_lock(record_id)
        try:
            with lock:
                current = self.get_record(record_id)
                updated = apply_event(current, event)
                if not self.store.compare_and_swap(record_id, current.version, updated):
                    raise ConcurrentUpdateError(
                        f"Adherence record {record_id} was modified concurrently",
                        record_id=record_id,
                        expected_version=current.version,
                    )
                return updated
        finally:
            self._checkin_lock(record_id)
