"""
Unit normalization.

Glucose arrives from point-of-care meters in either mmol/L or mg/dL and the
unit is often not recorded. normalize_glucose() is the single place that
decides which one a bare number is; everything downstream works in mmol/L.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from paedsguard.core.dosing import DoseResult, compute_dose
from paedsguard.core.interventions import InterventionId, InterventionRuleSet
from paedsguard.utils import ValidationError

MGDL_PER_MMOLL = 18.0

# Physiological glucose never exceeds ~35 mmol/L in a living patient, and
# never falls below ~35 mg/dL without being profoundly hypoglycemic, so a
# bare reading above this is taken as mg/dL.
MGDL_HEURISTIC_THRESHOLD = 35.0

# Interpretation thresholds (mmol/L)
GLUCOSE_CRITICAL_LOW = 3.0
GLUCOSE_LOW          = 4.0
GLUCOSE_HIGH         = 11.0


class GlucoseUnit(str, Enum):
    MMOL_L = "mmol/L"
    MG_DL  = "mg/dL"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            folded = value.strip().casefold()
            for unit in cls:
                if unit.value.casefold() == folded:
                    return unit
        return None


def normalize_glucose(value: float, unit: Optional[str] = None) -> float:
    """
    Return ``value`` in mmol/L.

    An explicit unit always wins and is matched case-insensitively; without
    one, the magnitude decides.
    """
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value) or value < 0:
        raise ValidationError(f"Glucose must be a non-negative number, got {value!r}", field="glucose")

    if unit is not None:
        try:
            parsed = GlucoseUnit(unit)
        except ValueError:
            raise ValidationError(
                f"Unknown glucose unit {unit!r}; expected mmol/L or mg/dL",
                field="glucose_unit",
            ) from None
    else:
        parsed = GlucoseUnit.MG_DL if value > MGDL_HEURISTIC_THRESHOLD else GlucoseUnit.MMOL_L

    if parsed == GlucoseUnit.MG_DL:
        return value / MGDL_PER_MMOLL
    return float(value)


class GlucoseBand(str, Enum):
    CRITICAL_LOW = "critical_low"
    LOW          = "low"
    NORMAL       = "normal"
    HIGH         = "high"


@dataclass(frozen=True)
class GlucoseInterpretation:
    mmol_per_l: float
    band: GlucoseBand
    message: str
    dextrose_dose: Optional[DoseResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mmol_per_l": round(self.mmol_per_l, 1),
            "band": self.band.value,
            "message": self.message,
            "dextrose_dose": self.dextrose_dose.to_dict() if self.dextrose_dose else None,
        }


def interpret_glucose(
    value: float,
    unit: Optional[str] = None,
    weight_kg: Optional[float] = None,
    rules: Optional[InterventionRuleSet] = None,
) -> GlucoseInterpretation:
    """
    Classify a glucose reading. Critically low readings come with a
    dextrose 10% dose when the weight is known.
    """
    mmol = normalize_glucose(value, unit)

    if mmol < GLUCOSE_CRITICAL_LOW:
        dose = compute_dose(InterventionId.DEXTROSE_10, weight_kg, rules) if weight_kg is not None else None
        return GlucoseInterpretation(
            mmol,
            GlucoseBand.CRITICAL_LOW,
            f"Glucose {mmol:.1f} mmol/L is critically low. Give dextrose 10% now.",
            dextrose_dose=dose,
        )
    if mmol < GLUCOSE_LOW:
        return GlucoseInterpretation(
            mmol, GlucoseBand.LOW, f"Glucose {mmol:.1f} mmol/L is low-normal. Recheck in 30 minutes."
        )
    if mmol > GLUCOSE_HIGH:
        return GlucoseInterpretation(
            mmol, GlucoseBand.HIGH, f"Glucose {mmol:.1f} mmol/L is high. Check ketones for DKA."
        )
    return GlucoseInterpretation(mmol, GlucoseBand.NORMAL, f"Glucose {mmol:.1f} mmol/L is within normal range.")
