"""
Safety Guardrails

Usage:
    from paedsguard.core.safety import evaluate_safety
    from paedsguard.core.patient import PatientState

    verdict = evaluate_safety("adenosine", PatientState(age=4, weight=16))
    if not verdict.allowed:
        print(verdict.message)
"""
from .base import OverrideDescriptor, SafetyVerdict, Severity
from .evaluator import SAFETY_CHECKS, collect_safety_checks, evaluate_safety, select_verdict
from .procedures import (
    check_defibrillation_energy,
    check_epinephrine_interval,
    check_fluid_bolus_count,
)
from .neonatal import (
    GestationalCategory,
    NrpDrugId,
    NrpDrugRule,
    NrpRuleSet,
    WeightBand,
    check_nrp_contraindications,
    check_nrp_dose,
    default_nrp_rules,
    load_nrp_rules,
    validate_neonatal_weight,
)

__all__ = [
    "OverrideDescriptor",
    "SafetyVerdict",
    "Severity",
    "SAFETY_CHECKS",
    "collect_safety_checks",
    "evaluate_safety",
    "select_verdict",
    "check_defibrillation_energy",
    "check_epinephrine_interval",
    "check_fluid_bolus_count",
    "GestationalCategory",
    "NrpDrugId",
    "NrpDrugRule",
    "NrpRuleSet",
    "WeightBand",
    "check_nrp_contraindications",
    "check_nrp_dose",
    "default_nrp_rules",
    "load_nrp_rules",
    "validate_neonatal_weight",
]
