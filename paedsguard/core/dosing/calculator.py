"""
Dosing Calculator

Weight-scaled dose for a single intervention:

    raw   = weight_kg × per_kg_rate
    final = min(raw, max_dose)

The final value is reported at the rule's declared precision. Unknown rules
raise NotFoundError; the calculator never fabricates a dose.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from paedsguard.core.interventions import (
    InterventionRuleSet,
    RuleKey,
    default_intervention_rules,
)
from paedsguard.core.patient import validate_weight
from paedsguard.utils import get_logger, NotFoundError

logger = get_logger(__name__)


@dataclass(frozen=True)
class DoseResult:
    """Computed dose for one intervention at one weight."""
    rule_id: str
    dose_value: float
    unit: str
    was_clamped: bool
    raw_dose: float      # unrounded weight × rate, before the clamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "dose_value": self.dose_value,
            "unit": self.unit,
            "was_clamped": self.was_clamped,
        }


def compute_dose(
    rule_id: RuleKey,
    weight_kg: float,
    rules: Optional[InterventionRuleSet] = None,
) -> DoseResult:
    """
    Compute the clamped, rounded dose for ``rule_id`` at ``weight_kg``.

    Raises:
        ValidationError: weight is not a positive finite number.
        NotFoundError:   no rule with this id exists in ``rules``.
    """
    weight = validate_weight(weight_kg)
    rule_set = rules if rules is not None else default_intervention_rules()

    rule = rule_set.get(rule_id)
    if rule is None:
        raise NotFoundError(
            f"No dosing rule for intervention '{rule_id}'",
            kind="intervention",
            identifier=str(getattr(rule_id, "value", rule_id)),
        )

    raw = weight * rule.per_kg_rate
    final = min(raw, rule.max_dose)
    was_clamped = final < raw

    if was_clamped:
        logger.info(
            f"Dose for {rule.id.value} clamped at {rule.max_dose} {rule.unit} "
            f"(weight {weight} kg → raw {raw:.4f} {rule.unit})"
        )

    return DoseResult(
        rule_id=rule.id.value,
        dose_value=round(final, rule.precision),
        unit=rule.unit,
        was_clamped=was_clamped,
        raw_dose=raw,
    )
