"""
Procedure Guardrails

Resuscitation checks that depend on what has already happened during the
run (bolus count, time since last epinephrine) or on a device setting
(defibrillator energy), rather than on a single drug rule.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from paedsguard.core.patient import validate_timestamp, validate_weight
from paedsguard.utils import ValidationError
from .base import SafetyVerdict

# Epinephrine dosing interval (minutes)
EPI_MIN_INTERVAL = 3
EPI_MAX_INTERVAL = 5

# Defibrillation energy
DEFIB_FIRST_SHOCK_J_PER_KG = 2
DEFIB_MAX_J_PER_KG         = 4
DEFIB_ABSOLUTE_MAX_J       = 200

# Fluid boluses (20 mL/kg each) before mandatory reassessment
BOLUS_REASSESS_AT = 2
BOLUS_STOP_AT     = 3


def check_fluid_bolus_count(bolus_count: int) -> SafetyVerdict:
    """Guard against fluid overload from repeated boluses in shock."""
    if bolus_count < 0:
        raise ValidationError(f"Bolus count cannot be negative, got {bolus_count}", field="bolus_count")

    if bolus_count >= BOLUS_STOP_AT:
        return SafetyVerdict.hard_block(
            f"STOP: {bolus_count} fluid boluses given without improvement",
            "Persistent shock after 60 mL/kg suggests cardiogenic shock or fluid overload. "
            "Consider inotropes and escalate care.",
            check="fluid_bolus_count",
        )

    if bolus_count == BOLUS_REASSESS_AT:
        return SafetyVerdict.warning(
            "CAUTION: 2 fluid boluses given",
            "Reassess for signs of fluid overload (crackles, hepatomegaly, JVD). "
            "Consider inotropes if no improvement.",
            confirmation_text="I have reassessed for fluid overload and shock is still present",
            check="fluid_bolus_count",
        )

    return SafetyVerdict.safe(
        "Fluid bolus appropriate",
        "First fluid bolus is standard treatment for shock",
        check="fluid_bolus_count",
    )


def check_epinephrine_interval(
    last_dose_time: datetime,
    now: Optional[datetime] = None,
) -> SafetyVerdict:
    """
    Epinephrine every 3-5 minutes during arrest.

    Both timestamps must be timezone-aware.
    """
    last_dose_time = validate_timestamp(last_dose_time, "last_dose_time")
    now = validate_timestamp(now, "now") if now is not None else datetime.now(timezone.utc)
    elapsed = (now - last_dose_time).total_seconds() / 60
    if elapsed < 0:
        raise ValidationError("Last epinephrine dose is in the future", field="last_dose_time")

    if elapsed < EPI_MIN_INTERVAL:
        return SafetyVerdict.hard_block(
            f"STOP: Only {round(elapsed)} minutes since last epinephrine dose",
            "Epinephrine should be given every 3-5 minutes. Wait at least 3 minutes.",
            check="epinephrine_interval",
        )

    if elapsed > EPI_MAX_INTERVAL:
        return SafetyVerdict.caution(
            f"{round(elapsed)} minutes since last epinephrine dose",
            "Consider giving epinephrine now if still in cardiac arrest",
            check="epinephrine_interval",
        )

    return SafetyVerdict.safe(
        "Appropriate timing for epinephrine",
        "Dose interval is within 3-5 minute guideline",
        check="epinephrine_interval",
    )


def check_defibrillation_energy(energy_joules: float, weight_kg: float) -> SafetyVerdict:
    """2 J/kg first shock, up to 4 J/kg, never above the adult maximum."""
    weight = validate_weight(weight_kg)
    if energy_joules <= 0:
        raise ValidationError(f"Energy must be positive, got {energy_joules}", field="energy_joules")

    recommended = weight * DEFIB_FIRST_SHOCK_J_PER_KG
    max_energy = weight * DEFIB_MAX_J_PER_KG

    if energy_joules > DEFIB_ABSOLUTE_MAX_J:
        return SafetyVerdict.hard_block(
            f"STOP: Energy ({energy_joules:g} J) exceeds maximum ({DEFIB_ABSOLUTE_MAX_J} J)",
            "Reduce energy to prevent myocardial damage",
            check="defibrillation_energy",
        )

    if energy_joules > max_energy:
        return SafetyVerdict.hard_block(
            f"STOP: Energy ({energy_joules:g} J) exceeds {max_energy:g} J for {weight:g} kg child",
            "Maximum safe energy is 4 J/kg. Reduce energy.",
            check="defibrillation_energy",
        )

    if energy_joules < recommended * 0.5:
        return SafetyVerdict.warning(
            f"Energy ({energy_joules:g} J) is low for {weight:g} kg child",
            f"Recommended energy is {recommended:g} J (2 J/kg). Consider increasing.",
            confirmation_text="I understand this energy may be suboptimal",
            check="defibrillation_energy",
        )

    return SafetyVerdict.safe(
        "Defibrillation energy appropriate",
        f"Energy is within safe range for {weight:g} kg child",
        check="defibrillation_energy",
    )
