"""
Time-to-Death Urgency Scoring

Prioritizes candidate diagnoses by how quickly they kill without
intervention:

    TIER 1 – minutes (foreign body, tension pneumothorax, anaphylaxis)
    TIER 2 – hours   (meningitis, DKA, status epilepticus)
    TIER 3 – days    (pneumonia, cellulitis)

Unknown diagnoses get a conservative TIER 2 default: never the most urgent
tier, never assumed benign.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from paedsguard.config import settings
from paedsguard.core.tables import read_table
from paedsguard.utils import get_logger, RuleConfigurationError, ValidationError

logger = get_logger(__name__)


class UrgencyTier(str, Enum):
    TIER_1_MINUTES = "tier_1_minutes"
    TIER_2_HOURS   = "tier_2_hours"
    TIER_3_DAYS    = "tier_3_days"


# Lower rank = more urgent
_TIER_RANK = {
    UrgencyTier.TIER_1_MINUTES: 0,
    UrgencyTier.TIER_2_HOURS:   1,
    UrgencyTier.TIER_3_DAYS:    2,
}


class DiagnosisId(str, Enum):
    FOREIGN_BODY_ASPIRATION         = "foreign_body_aspiration"
    TENSION_PNEUMOTHORAX            = "tension_pneumothorax"
    CARDIAC_TAMPONADE               = "cardiac_tamponade"
    OPIOID_OVERDOSE                 = "opioid_overdose"
    SHOCK_HYPOVOLEMIC               = "shock_hypovolemic"
    SHOCK_CARDIOGENIC               = "shock_cardiogenic"
    SHOCK_OBSTRUCTIVE               = "shock_obstructive"
    SHOCK_DISTRIBUTIVE_ANAPHYLACTIC = "shock_distributive_anaphylactic"
    SHOCK_DISTRIBUTIVE_SEPTIC       = "shock_distributive_septic"
    SHOCK_NEUROGENIC                = "shock_neurogenic"
    ANAPHYLAXIS                     = "anaphylaxis"
    MYOCARDIAL_INFARCTION           = "myocardial_infarction"
    STROKE                          = "stroke"
    BACTERIAL_MENINGITIS            = "bacterial_meningitis"
    DKA                             = "dka"
    SEPTIC_SHOCK                    = "septic_shock"
    SEVERE_BURNS                    = "severe_burns"
    ECLAMPSIA                       = "eclampsia"
    STATUS_EPILEPTICUS              = "status_epilepticus"
    PULMONARY_EMBOLISM              = "pulmonary_embolism"
    HYPERKALEMIA                    = "hyperkalemia"
    HYPOGLYCEMIA                    = "hypoglycemia"
    POSTPARTUM_HEMORRHAGE           = "postpartum_hemorrhage"
    STATUS_ASTHMATICUS              = "status_asthmaticus"
    NEONATAL_SEPSIS                 = "neonatal_sepsis"
    PNEUMONIA                       = "pneumonia"
    CELLULITIS                      = "cellulitis"
    URINARY_TRACT_INFECTION         = "urinary_tract_infection"


@dataclass(frozen=True)
class UrgencyScore:
    tier: UrgencyTier
    time_to_death_minutes: int      # untreated
    intervention_window: str        # human-readable treatment window
    priority: int                   # 1-10, 10 = most urgent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "time_to_death_minutes": self.time_to_death_minutes,
            "intervention_window": self.intervention_window,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class Diagnosis:
    """A candidate diagnosis with its independently estimated probability."""
    id: str
    probability: float = 0.0
    name: Optional[str] = None
    urgency: Optional[UrgencyScore] = field(default=None, compare=False)

    def __post_init__(self):
        if not 0.0 <= self.probability <= 1.0:
            raise ValidationError(
                f"Diagnosis probability must be within [0, 1], got {self.probability}",
                field="probability",
            )


# ── Table ────────────────────────────────────────────────────────────────────

class _UrgencyEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    tier: UrgencyTier
    time_to_death_minutes: int = Field(gt=0)
    intervention_window: str
    priority: int = Field(ge=1, le=10)

    def to_score(self) -> UrgencyScore:
        return UrgencyScore(self.tier, self.time_to_death_minutes, self.intervention_window, self.priority)


class _UrgencyTableDoc(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str
    default: _UrgencyEntry
    diagnoses: Dict[DiagnosisId, _UrgencyEntry]


@dataclass(frozen=True)
class UrgencyTable:
    version: str
    entries: Mapping[DiagnosisId, UrgencyScore]
    default: UrgencyScore

    @classmethod
    def build(
        cls,
        entries: Mapping[DiagnosisId, UrgencyScore],
        default: UrgencyScore,
        version: str = "custom",
        require_all: bool = False,
    ) -> "UrgencyTable":
        if require_all:
            missing = [d.value for d in DiagnosisId if d not in entries]
            if missing:
                raise RuleConfigurationError(
                    f"Urgency table is missing: {', '.join(missing)}",
                    table="urgency",
                    details={"missing": missing},
                )
        _check_priority_bands(list(entries.values()) + [default])
        return cls(version=version, entries=MappingProxyType(dict(entries)), default=default)

    def lookup(self, diagnosis_id: Union[str, DiagnosisId]) -> Optional[UrgencyScore]:
        try:
            key = DiagnosisId(diagnosis_id)
        except ValueError:
            return None
        return self.entries.get(key)


def _check_priority_bands(scores: Iterable[UrgencyScore]) -> None:
    """
    A less urgent tier may never outrank a more urgent one: the highest
    priority in each tier must not exceed the lowest priority of the tier
    above it.
    """
    bands: Dict[UrgencyTier, List[int]] = {}
    for s in scores:
        bands.setdefault(s.tier, []).append(s.priority)

    ordered = sorted(bands, key=_TIER_RANK.get)
    for upper, lower in zip(ordered, ordered[1:]):
        if max(bands[lower]) > min(bands[upper]):
            raise RuleConfigurationError(
                f"Priority band of {lower.value} overlaps {upper.value}",
                table="urgency",
                details={upper.value: sorted(bands[upper]), lower.value: sorted(bands[lower])},
            )


@lru_cache(maxsize=8)
def load_urgency_table(path: Optional[Path] = None) -> UrgencyTable:
    table_path = Path(path) if path else settings.resolved_urgency_table_path
    doc = read_table(table_path, _UrgencyTableDoc, "urgency")
    return UrgencyTable.build(
        {k: v.to_score() for k, v in doc.diagnoses.items()},
        doc.default.to_score(),
        version=doc.version,
        require_all=True,
    )


def default_urgency_table() -> UrgencyTable:
    return load_urgency_table(settings.resolved_urgency_table_path)


# ── Scoring ──────────────────────────────────────────────────────────────────

def score_urgency(
    diagnosis_id: Union[str, DiagnosisId],
    table: Optional[UrgencyTable] = None,
) -> UrgencyScore:
    """Urgency for one diagnosis id; the conservative default if unknown."""
    table = table or default_urgency_table()
    score = table.lookup(diagnosis_id)
    if score is None:
        logger.debug(f"Urgency: unknown diagnosis '{diagnosis_id}', using default {table.default.tier.value}")
        return table.default
    return score


def rank_by_urgency(
    diagnoses: Iterable[Diagnosis],
    table: Optional[UrgencyTable] = None,
) -> List[Diagnosis]:
    """
    Most urgent first: priority descending, then probability descending.

    Equal priorities across tiers resolve to the more urgent tier before
    probability is considered. The sort is stable, so exact ties keep their
    input order. Returned diagnoses carry their UrgencyScore.
    """
    table = table or default_urgency_table()
    enriched = [enrich_with_urgency(d, table) for d in diagnoses]
    return sorted(
        enriched,
        key=lambda d: (-d.urgency.priority, _TIER_RANK[d.urgency.tier], -d.probability),
    )


def enrich_with_urgency(diagnosis: Diagnosis, table: Optional[UrgencyTable] = None) -> Diagnosis:
    return Diagnosis(
        id=diagnosis.id,
        probability=diagnosis.probability,
        name=diagnosis.name,
        urgency=score_urgency(diagnosis.id, table),
    )
