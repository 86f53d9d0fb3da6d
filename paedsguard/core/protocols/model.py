"""
Data model for emergency protocol execution.

Protocol definitions (steps and decision points) are static configuration;
AdherenceRecord is the one runtime record, owned by the external store and
changed only through the transition function in transitions.py.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from paedsguard.config import settings
from paedsguard.core.tables import read_table
from paedsguard.utils import NotFoundError, RuleConfigurationError, ValidationError


class ProtocolId(str, Enum):
    SEPTIC_SHOCK         = "septic_shock"
    SEVERE_PNEUMONIA     = "severe_pneumonia"
    SEVERE_MALARIA       = "severe_malaria"
    BACTERIAL_MENINGITIS = "bacterial_meningitis"
    SEVERE_DEHYDRATION   = "severe_dehydration"


class ProtocolCategory(str, Enum):
    SHOCK      = "shock"
    PNEUMONIA  = "pneumonia"
    MALARIA    = "malaria"
    MENINGITIS = "meningitis"
    DIARRHEA   = "diarrhea"


class AdherenceStatus(str, Enum):
    """
    Lifecycle of one protocol execution.

    not_started → started → in_progress → completed | abandoned

    NOT_STARTED is never stored: a record exists only once a run starts.
    """
    NOT_STARTED = "not_started"
    STARTED     = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    ABANDONED   = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (AdherenceStatus.COMPLETED, AdherenceStatus.ABANDONED)


class ProtocolOutcome(str, Enum):
    IMPROVED     = "improved"
    STABLE       = "stable"
    DETERIORATED = "deteriorated"
    TRANSFERRED  = "transferred"
    UNKNOWN      = "unknown"


class Decision(str, Enum):
    YES = "yes"
    NO  = "no"


def parse_enum(enum_cls, value, field_name: str):
    """Coerce a caller value into ``enum_cls`` or raise ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} {value!r}; expected one of: {allowed}",
            field=field_name,
        ) from None


# ── Protocol definitions ─────────────────────────────────────────────────────

class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ProtocolStep(_FrozenModel):
    step_id: str
    step_number: int = Field(ge=1)
    title: str
    instructions: str


class DecisionPoint(_FrozenModel):
    """Yes/no branch bound to a step. A null target means protocol complete."""
    step_id: str
    question: str
    yes_next_step: Optional[str] = None
    no_next_step: Optional[str] = None

    def target(self, decision: Decision) -> Optional[str]:
        return self.yes_next_step if decision == Decision.YES else self.no_next_step


class Protocol(_FrozenModel):
    id: ProtocolId
    name: str
    category: ProtocolCategory
    key_symptoms: Tuple[str, ...] = ()
    steps: Tuple[ProtocolStep, ...] = Field(min_length=1)
    decision_points: Tuple[DecisionPoint, ...] = ()

    @model_validator(mode="after")
    def _check_structure(self) -> "Protocol":
        numbers = [s.step_number for s in self.steps]
        if numbers != list(range(1, len(self.steps) + 1)):
            raise ValueError(f"{self.id.value}: steps must be numbered 1..{len(self.steps)} in order")

        step_ids = {s.step_id for s in self.steps}
        if len(step_ids) != len(self.steps):
            raise ValueError(f"{self.id.value}: duplicate step_id")

        bound = set()
        for dp in self.decision_points:
            if dp.step_id not in step_ids:
                raise ValueError(f"{self.id.value}: decision point on unknown step {dp.step_id}")
            if dp.step_id in bound:
                raise ValueError(f"{self.id.value}: more than one decision point on {dp.step_id}")
            bound.add(dp.step_id)
            for target in (dp.yes_next_step, dp.no_next_step):
                if target is not None and target not in step_ids:
                    raise ValueError(f"{self.id.value}: decision target {target} is not a step")
        return self

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class _ProtocolCatalogDoc(_FrozenModel):
    version: str
    protocols: Tuple[Protocol, ...]


@dataclass(frozen=True)
class StepLocation:
    protocol: Protocol
    step: ProtocolStep
    decision_point: Optional[DecisionPoint]


@dataclass(frozen=True)
class ProtocolCatalog:
    """Read-only protocol lookup plus a global step_id index."""
    version: str
    protocols: Mapping[ProtocolId, Protocol]
    steps: Mapping[str, StepLocation]

    @classmethod
    def build(
        cls,
        protocols,
        version: str = "custom",
        require_all: bool = False,
    ) -> "ProtocolCatalog":
        by_id: Dict[ProtocolId, Protocol] = {}
        step_index: Dict[str, StepLocation] = {}
        for protocol in protocols:
            if protocol.id in by_id:
                raise RuleConfigurationError(f"Duplicate protocol: {protocol.id.value}", table="protocols")
            by_id[protocol.id] = protocol

            decision_points = {dp.step_id: dp for dp in protocol.decision_points}
            for step in protocol.steps:
                if step.step_id in step_index:
                    raise RuleConfigurationError(
                        f"Step id {step.step_id} is used by more than one protocol",
                        table="protocols",
                    )
                step_index[step.step_id] = StepLocation(protocol, step, decision_points.get(step.step_id))

        if require_all:
            missing = [p.value for p in ProtocolId if p not in by_id]
            if missing:
                raise RuleConfigurationError(
                    f"Protocol catalog is missing: {', '.join(missing)}",
                    table="protocols",
                    details={"missing": missing},
                )

        return cls(
            version=version,
            protocols=MappingProxyType(by_id),
            steps=MappingProxyType(step_index),
        )

    def get(self, protocol_id: Union[str, ProtocolId]) -> Protocol:
        try:
            key = ProtocolId(protocol_id)
        except ValueError:
            key = None
        protocol = self.protocols.get(key) if key is not None else None
        if protocol is None:
            raise NotFoundError(f"Unknown protocol '{protocol_id}'", kind="protocol", identifier=str(protocol_id))
        return protocol

    def locate(self, step_id: str) -> StepLocation:
        location = self.steps.get(step_id)
        if location is None:
            raise NotFoundError(f"Unknown protocol step '{step_id}'", kind="step", identifier=str(step_id))
        return location

    def __iter__(self):
        return iter(self.protocols.values())

    def __len__(self) -> int:
        return len(self.protocols)


@lru_cache(maxsize=8)
def load_protocol_catalog(path: Optional[Path] = None) -> ProtocolCatalog:
    table_path = Path(path) if path else settings.resolved_protocol_catalog_path
    doc = read_table(table_path, _ProtocolCatalogDoc, "protocols")
    return ProtocolCatalog.build(doc.protocols, version=doc.version, require_all=True)


def default_protocol_catalog() -> ProtocolCatalog:
    return load_protocol_catalog(settings.resolved_protocol_catalog_path)


# ── Runtime records ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AdherenceRecord:
    """
    One protocol execution for one patient.

    ``version`` increments on every stored change and is what the store's
    compare-and-swap checks.
    """
    record_id: str
    patient_id: str
    protocol_id: str
    total_steps: int
    start_time: datetime
    provider_id: Optional[str] = None
    status: AdherenceStatus = AdherenceStatus.STARTED
    steps_completed: int = 0
    adherence_score: int = 0
    outcome: Optional[ProtocolOutcome] = None
    notes: Optional[str] = None
    end_time: Optional[datetime] = None
    version: int = 0
    step_notes: Tuple[Tuple[int, str], ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "patient_id": self.patient_id,
            "protocol_id": self.protocol_id,
            "provider_id": self.provider_id,
            "status": self.status.value,
            "steps_completed": self.steps_completed,
            "total_steps": self.total_steps,
            "adherence_score": self.adherence_score,
            "outcome": self.outcome.value if self.outcome else None,
            "notes": self.notes,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass(frozen=True)
class AdherenceProgress:
    """What the caller gets back after a step or end-of-run update."""
    record_id: str
    status: AdherenceStatus
    steps_completed: int
    total_steps: int
    adherence_score: int
    outcome: Optional[ProtocolOutcome] = None

    @classmethod
    def of(cls, record: AdherenceRecord) -> "AdherenceProgress":
        return cls(
            record_id=record.record_id,
            status=record.status,
            steps_completed=record.steps_completed,
            total_steps=record.total_steps,
            adherence_score=record.adherence_score,
            outcome=record.outcome,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "status": self.status.value,
            "steps_completed": self.steps_completed,
            "total_steps": self.total_steps,
            "adherence_score": self.adherence_score,
            "outcome": self.outcome.value if self.outcome else None,
        }


@dataclass(frozen=True)
class BranchResult:
    """Next step to present, or protocol completion."""
    protocol_complete: bool
    next_step: Optional[ProtocolStep] = None
    message: Optional[str] = None

    @property
    def next_step_id(self) -> Optional[str]:
        return self.next_step.step_id if self.next_step else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol_complete": self.protocol_complete,
            "next_step_id": self.next_step_id,
            "next_step": self.next_step.model_dump() if self.next_step else None,
            "message": self.message,
        }


@dataclass(frozen=True)
class AdherenceStats:
    total_runs: int
    completed_runs: int
    mean_adherence: float
    outcome_breakdown: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "completed_runs": self.completed_runs,
            "mean_adherence": self.mean_adherence,
            "outcome_breakdown": dict(self.outcome_breakdown),
        }
