"""
Clinical Decision Core

Dosing, safety guardrails, urgency scoring and protocol tracking for
pediatric emergency care.

Usage:
    from paedsguard.core import DecisionSupportEngine, PatientState

    engine = DecisionSupportEngine()
    verdict = engine.evaluate_safety("adenosine", PatientState(age=4, weight=16))
"""
from .engine import DecisionSupportEngine
from .patient import PatientState, VitalSigns
from .interventions import InterventionId, InterventionRuleSet, load_intervention_rules
from .dosing import DoseResult, compute_dose
from .safety import SafetyVerdict, Severity, evaluate_safety
from .urgency import Diagnosis, UrgencyScore, UrgencyTier, rank_by_urgency, score_urgency
from .protocols import ProtocolTracker, AdherenceStatus, ProtocolOutcome
from .units import normalize_glucose, interpret_glucose

__all__ = [
    "DecisionSupportEngine",
    "PatientState",
    "VitalSigns",
    "InterventionId",
    "InterventionRuleSet",
    "load_intervention_rules",
    "DoseResult",
    "compute_dose",
    "SafetyVerdict",
    "Severity",
    "evaluate_safety",
    "Diagnosis",
    "UrgencyScore",
    "UrgencyTier",
    "rank_by_urgency",
    "score_urgency",
    "ProtocolTracker",
    "AdherenceStatus",
    "ProtocolOutcome",
    "normalize_glucose",
    "interpret_glucose",
]
