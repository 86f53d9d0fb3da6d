"""
Decision Support Engine

Single entry point for the request layer. Holds the rule set, urgency table,
protocol catalog and tracker so every call in a deployment sees the same
table versions.

Usage:
    from paedsguard.core import DecisionSupportEngine, PatientState

    engine = DecisionSupportEngine()
    dose = engine.compute_dose("epinephrine_iv", 20)
    verdict = engine.evaluate_safety("epinephrine_iv", PatientState(age=6, weight=20))
    run = engine.start_protocol("p-17", "septic_shock", provider_id="dr-4")

Everything except the protocol calls is stateless. The protocol calls go
through one ProtocolTracker and its store.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

from paedsguard.utils import get_logger
from .dosing import DoseResult, compute_dose
from .interventions import InterventionRuleSet, RuleKey, default_intervention_rules
from .patient import PatientState, VitalSigns
from .protocols import (
    AdherenceProgress,
    AdherenceRecord,
    AdherenceStats,
    AdherenceStore,
    BranchResult,
    ProtocolCatalog,
    ProtocolRecommendation,
    ProtocolTracker,
    default_protocol_catalog,
    recommend_protocols,
)
from .safety import SafetyVerdict, collect_safety_checks, evaluate_safety
from .units import GlucoseInterpretation, interpret_glucose
from .urgency import Diagnosis, UrgencyScore, UrgencyTable, default_urgency_table, rank_by_urgency, score_urgency

logger = get_logger(__name__)


class DecisionSupportEngine:
    """
    Facade over dosing, safety, urgency and protocol tracking.

    Args:
        rules:          Intervention rule set; packaged table if None.
        urgency_table:  Time-to-death table; packaged table if None.
        catalog:        Protocol catalog; packaged catalog if None.
        store:          Adherence record store; in-memory if None.
        clock:          "now" for the tracker; injectable for tests.
    """

    def __init__(
        self,
        rules: Optional[InterventionRuleSet] = None,
        urgency_table: Optional[UrgencyTable] = None,
        catalog: Optional[ProtocolCatalog] = None,
        store: Optional[AdherenceStore] = None,
        clock=None,
    ):
        self.rules = rules if rules is not None else default_intervention_rules()
        self.urgency_table = urgency_table if urgency_table is not None else default_urgency_table()
        self.catalog = catalog if catalog is not None else default_protocol_catalog()
        tracker_kwargs = {"clock": clock} if clock is not None else {}
        self.tracker = ProtocolTracker(catalog=self.catalog, store=store, **tracker_kwargs)
        logger.info(
            f"DecisionSupportEngine ready: rules={self.rules.version}, "
            f"urgency={self.urgency_table.version}, protocols={self.catalog.version}"
        )

    # ── Dosing & safety ──────────────────────────────────────────────────
    def compute_dose(self, rule_id: RuleKey, weight_kg: float) -> DoseResult:
        return compute_dose(rule_id, weight_kg, self.rules)

    def evaluate_safety(self, rule_id: RuleKey, patient: PatientState) -> SafetyVerdict:
        return evaluate_safety(rule_id, patient, self.rules)

    def safety_audit(self, rule_id: RuleKey, patient: PatientState) -> List[SafetyVerdict]:
        """Every per-check verdict, for audit trails."""
        return collect_safety_checks(rule_id, patient, self.rules)

    def dose_with_safety(self, rule_id: RuleKey, patient: PatientState) -> Dict[str, Any]:
        """
        Dose plus the safety verdict in one response.

        The dose is omitted when the verdict is a hard block, and when the
        intervention has no dosing rule.
        """
        verdict = self.evaluate_safety(rule_id, patient)
        dose = None
        if verdict.allowed and rule_id in self.rules:
            dose = self.compute_dose(rule_id, patient.weight)
        return {
            "safety": verdict.to_dict(),
            "dose": dose.to_dict() if dose else None,
        }

    # ── Urgency ──────────────────────────────────────────────────────────
    def score_urgency(self, diagnosis_id: str) -> UrgencyScore:
        return score_urgency(diagnosis_id, self.urgency_table)

    def rank_by_urgency(self, diagnoses: Iterable[Diagnosis]) -> List[Diagnosis]:
        ranked = rank_by_urgency(diagnoses, self.urgency_table)
        if ranked:
            logger.debug(f"DecisionSupportEngine: most urgent diagnosis {ranked[0].id}")
        return ranked

    # ── Protocols ────────────────────────────────────────────────────────
    def start_protocol(
        self,
        patient_id: Union[str, int],
        protocol_id: str,
        provider_id: Optional[Union[str, int]] = None,
    ) -> str:
        return self.tracker.start_protocol(patient_id, protocol_id, provider_id)

    def complete_step(self, record_id: str, step_number: int, notes: Optional[str] = None) -> AdherenceProgress:
        return self.tracker.complete_step(record_id, step_number, notes)

    def end_protocol(self, record_id: str, outcome: str, notes: Optional[str] = None) -> AdherenceProgress:
        return self.tracker.end_protocol(record_id, outcome, notes)

    def abandon_protocol(self, record_id: str, notes: Optional[str] = None) -> AdherenceProgress:
        return self.tracker.abandon_protocol(record_id, notes)

    def get_record(self, record_id: str) -> AdherenceRecord:
        return self.tracker.get_record(record_id)

    def get_decision_branch(self, step_id: str, decision: str) -> BranchResult:
        return self.tracker.get_decision_branch(step_id, decision)

    def next_linear_step(self, step_id: str) -> BranchResult:
        return self.tracker.next_linear_step(step_id)

    def adherence_stats(self, provider_id: Optional[Union[str, int]] = None) -> AdherenceStats:
        return self.tracker.adherence_stats(provider_id)

    def adherence_history(
        self,
        provider_id: Optional[Union[str, int]] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[AdherenceRecord]:
        return self.tracker.adherence_history(provider_id, limit=limit, offset=offset)

    def recommend_protocols(
        self,
        symptoms: Optional[Iterable[str]] = None,
        vital_signs: Optional[Union[VitalSigns, Dict[str, float]]] = None,
    ) -> List[ProtocolRecommendation]:
        return recommend_protocols(symptoms, vital_signs, self.catalog)

    # ── Units ────────────────────────────────────────────────────────────
    def interpret_glucose(
        self,
        value: float,
        unit: Optional[str] = None,
        weight_kg: Optional[float] = None,
    ) -> GlucoseInterpretation:
        return interpret_glucose(value, unit, weight_kg, self.rules)
