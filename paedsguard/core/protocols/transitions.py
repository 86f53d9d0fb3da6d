"""
Adherence state transitions.

apply_event(record, event) → new record. Pure: the input record is never
modified, and a rejected event raises without producing anything, so a
failed call cannot leave a half-updated record behind.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Union

from paedsguard.utils import InvalidStateError, ValidationError
from .model import AdherenceRecord, AdherenceStatus, ProtocolOutcome


@dataclass(frozen=True)
class StepCompleted:
    step_number: int
    notes: Optional[str] = None


@dataclass(frozen=True)
class ProtocolEnded:
    outcome: ProtocolOutcome
    at: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class ProtocolAbandoned:
    at: datetime
    notes: Optional[str] = None


AdherenceEvent = Union[StepCompleted, ProtocolEnded, ProtocolAbandoned]


def adherence_score(steps_completed: int, total_steps: int) -> int:
    """
    Percentage of steps completed, rounded half-up.

    Held at 99 until every step is done so that 100 always means complete.
    """
    if total_steps <= 0:
        return 0
    steps = max(0, min(steps_completed, total_steps))
    score = int(math.floor(steps / total_steps * 100 + 0.5))
    if steps < total_steps:
        score = min(score, 99)
    return score


def require_open(record: AdherenceRecord, action: str) -> None:
    if record.status.is_terminal:
        raise InvalidStateError(
            f"Cannot {action}: protocol run {record.record_id} is already {record.status.value}",
            state=record.status.value,
            details={"record_id": record.record_id},
        )


def apply_event(record: AdherenceRecord, event: AdherenceEvent) -> AdherenceRecord:
    """Return the record that results from ``event``; the version is bumped."""
    if isinstance(event, StepCompleted):
        require_open(record, "complete step")
        step = event.step_number
        if isinstance(step, bool) or not isinstance(step, int) or not 1 <= step <= record.total_steps:
            raise ValidationError(
                f"Step number must be between 1 and {record.total_steps}, got {step!r}",
                field="step_number",
            )
        steps_completed = max(record.steps_completed, step)
        step_notes = record.step_notes
        if event.notes:
            step_notes = step_notes + ((step, event.notes),)
        return replace(
            record,
            steps_completed=steps_completed,
            adherence_score=adherence_score(steps_completed, record.total_steps),
            status=AdherenceStatus.IN_PROGRESS,
            step_notes=step_notes,
            version=record.version + 1,
        )

    if isinstance(event, ProtocolEnded):
        require_open(record, "end protocol")
        return replace(
            record,
            status=AdherenceStatus.COMPLETED,
            outcome=event.outcome,
            notes=event.notes,
            end_time=event.at,
            version=record.version + 1,
        )

    if isinstance(event, ProtocolAbandoned):
        require_open(record, "abandon protocol")
        return replace(
            record,
            status=AdherenceStatus.ABANDONED,
            notes=event.notes,
            end_time=event.at,
            version=record.version + 1,
        )

    raise TypeError(f"Unsupported adherence event: {type(event).__name__}")
