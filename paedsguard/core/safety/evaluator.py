"""
Safety Guardrail Evaluator

Runs the registered checks in declared order and reduces them to a single
verdict:

    1. first HARD_BLOCK, else
    2. first WARNING, else
    3. first CAUTION, else
    4. SAFE ("No contraindications detected").

Only one message is ever surfaced per call even when several checks fire.
collect_safety_checks() exposes every per-check result for audit trails.

Adding a check:
    1. Implement check_<name>(InterventionRule, PatientState) in checks.py
    2. Insert it into SAFETY_CHECKS at its precedence position.
"""
from __future__ import annotations

from typing import List, Optional

from paedsguard.core.interventions import (
    InterventionRuleSet,
    RuleKey,
    default_intervention_rules,
)
from paedsguard.core.patient import PatientState
from paedsguard.utils import get_logger
from .base import SafetyVerdict, Severity
from .checks import (
    check_allergies,
    check_contraindications,
    check_dose_limits,
    check_interactions,
    check_age_appropriateness,
)

logger = get_logger(__name__)

# ── Registry: declared check order ───────────────────────────────────────────
SAFETY_CHECKS = (
    check_allergies,
    check_contraindications,
    check_dose_limits,
    check_interactions,
    check_age_appropriateness,
)

_PRECEDENCE = (Severity.HARD_BLOCK, Severity.WARNING, Severity.CAUTION)

UNKNOWN_RULE_MESSAGE = "No safety rules defined for this intervention"


def collect_safety_checks(
    rule_id: RuleKey,
    patient: PatientState,
    rules: Optional[InterventionRuleSet] = None,
) -> List[SafetyVerdict]:
    """
    Every check's verdict in declared order.

    An unknown rule yields a single CAUTION verdict: absence of rules is not
    evidence of safety.
    """
    rule_set = rules if rules is not None else default_intervention_rules()
    rule = rule_set.get(rule_id)
    if rule is None:
        logger.warning(f"Safety evaluation requested for unknown intervention '{rule_id}'")
        return [
            SafetyVerdict.caution(
                UNKNOWN_RULE_MESSAGE,
                "Verify dose and contraindications manually against current guidelines",
                check="rule_lookup",
            )
        ]

    return [check(rule, patient) for check in SAFETY_CHECKS]


def select_verdict(verdicts: List[SafetyVerdict]) -> SafetyVerdict:
    """Apply first-match-wins severity precedence."""
    for severity in _PRECEDENCE:
        for verdict in verdicts:
            if verdict.severity == severity:
                return verdict

    return SafetyVerdict.safe(
        "No contraindications detected",
        "Drug is safe to administer based on current patient state",
    )


def evaluate_safety(
    rule_id: RuleKey,
    patient: PatientState,
    rules: Optional[InterventionRuleSet] = None,
) -> SafetyVerdict:
    """
    Single ranked safety verdict for giving ``rule_id`` to ``patient``.

    Args:
        rule_id: Intervention id (string or InterventionId).
        patient: Immutable patient snapshot.
        rules:   Rule set to evaluate against; packaged defaults if None.

    Returns:
        Exactly one SafetyVerdict.
    """
    verdicts = collect_safety_checks(rule_id, patient, rules)
    verdict = select_verdict(verdicts)

    fired = [v.check for v in verdicts if v.severity != Severity.SAFE]
    if verdict.severity == Severity.HARD_BLOCK:
        logger.info(f"Safety [{rule_id}]: HARD BLOCK from {verdict.check}: {verdict.message}")
    elif fired:
        logger.debug(f"Safety [{rule_id}]: {verdict.severity.value} (fired: {', '.join(fired)})")
    return verdict
