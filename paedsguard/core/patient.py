"""
Patient State

Immutable snapshot of the patient handed to every evaluation call. The engine
never mutates it; collections are frozen at construction so a caller cannot
change a snapshot underneath a running evaluation either.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional

from paedsguard.utils import ValidationError

VITAL_SIGN_FIELDS = (
    "heart_rate",
    "systolic_bp",
    "respiratory_rate",
    "oxygen_saturation",
    "temperature",
)


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_weight(weight_kg: Any) -> float:
    """Return weight as float or raise ValidationError if it is not > 0."""
    if not _finite(weight_kg) or weight_kg <= 0:
        raise ValidationError(
            f"Weight must be a positive number of kilograms, got {weight_kg!r}",
            field="weight",
        )
    return float(weight_kg)


def validate_age(age_years: Any) -> float:
    """Return age as float or raise ValidationError if it is negative/malformed."""
    if not _finite(age_years) or age_years < 0:
        raise ValidationError(
            f"Age must be a non-negative number of years, got {age_years!r}",
            field="age",
        )
    return float(age_years)


def validate_timestamp(value: Any, field_name: str) -> datetime:
    """Timestamps must be timezone-aware; naive ones cannot be compared safely."""
    if not isinstance(value, datetime) or value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(
            f"{field_name} must be a timezone-aware datetime, got {value!r}",
            field=field_name,
        )
    return value


@dataclass(frozen=True)
class VitalSigns:
    """Partial set of vital signs; any field may be missing."""
    heart_rate: Optional[float] = None          # bpm
    systolic_bp: Optional[float] = None         # mmHg
    respiratory_rate: Optional[float] = None    # breaths/min
    oxygen_saturation: Optional[float] = None   # %
    temperature: Optional[float] = None         # °C

    def get(self, name: str) -> Optional[float]:
        if name not in VITAL_SIGN_FIELDS:
            raise KeyError(name)
        return getattr(self, name)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VitalSigns":
        if not data:
            return cls()
        return cls(**{k: data[k] for k in VITAL_SIGN_FIELDS if data.get(k) is not None})

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {name: getattr(self, name) for name in VITAL_SIGN_FIELDS}


def _freeze(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(v.strip() for v in values if v and v.strip())


@dataclass(frozen=True)
class PatientState:
    """
    Patient snapshot for a single evaluation call.

    Attributes:
        age:                 Years (fractional for infants, 0.083 ≈ 1 month).
        weight:              Kilograms, strictly positive.
        allergies:           Free-text allergy labels.
        conditions:          Active diagnoses / findings.
        current_medications: Drugs the patient is already receiving.
        vital_signs:         Latest vitals, possibly incomplete.
    """
    age: float
    weight: float
    allergies: FrozenSet[str] = field(default_factory=frozenset)
    conditions: FrozenSet[str] = field(default_factory=frozenset)
    current_medications: FrozenSet[str] = field(default_factory=frozenset)
    vital_signs: VitalSigns = field(default_factory=VitalSigns)

    def __post_init__(self):
        object.__setattr__(self, "age", validate_age(self.age))
        object.__setattr__(self, "weight", validate_weight(self.weight))
        object.__setattr__(self, "allergies", _freeze(self.allergies))
        object.__setattr__(self, "conditions", _freeze(self.conditions))
        object.__setattr__(self, "current_medications", _freeze(self.current_medications))
        if self.vital_signs is None:
            object.__setattr__(self, "vital_signs", VitalSigns())
        elif isinstance(self.vital_signs, dict):
            object.__setattr__(self, "vital_signs", VitalSigns.from_dict(self.vital_signs))

    def has_condition(self, condition: str) -> bool:
        """Case-insensitive exact match against the patient's conditions."""
        wanted = condition.strip().lower()
        return any(c.lower() == wanted for c in self.conditions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "age": self.age,
            "weight": self.weight,
            "allergies": sorted(self.allergies),
            "conditions": sorted(self.conditions),
            "current_medications": sorted(self.current_medications),
            "vital_signs": self.vital_signs.to_dict(),
        }
