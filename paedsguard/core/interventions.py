"""
Intervention Rules

Static configuration for every drug/procedure the engine can dose and
guard. Rules are loaded once from a versioned JSON table into a read-only
id → rule mapping. Evaluators receive the rule set explicitly, so tests can
substitute their own tables without touching module state.

Adding an intervention:
    1. Add a member to InterventionId.
    2. Add its entry to data/intervention_rules.json.
    The packaged table is checked for exhaustive coverage at load time.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, model_validator

from paedsguard.config import settings
from paedsguard.core.tables import read_table
from paedsguard.utils import get_logger, RuleConfigurationError

logger = get_logger(__name__)


class InterventionId(str, Enum):
    """Stable identifiers for every configured intervention."""
    EPINEPHRINE_IV      = "epinephrine_iv"
    EPINEPHRINE_IM      = "epinephrine_im"
    AMIODARONE          = "amiodarone"
    ADENOSINE           = "adenosine"
    ATROPINE            = "atropine"
    NORMAL_SALINE_BOLUS = "normal_saline_bolus"
    DEXTROSE_10         = "dextrose_10"
    HYDROCORTISONE      = "hydrocortisone"
    DIAZEPAM            = "diazepam"
    SALBUTAMOL          = "salbutamol"


RuleKey = Union[str, InterventionId]

VitalSignName = Literal[
    "heart_rate", "systolic_bp", "respiratory_rate", "oxygen_saturation", "temperature"
]


def resolve_intervention_id(rule_id: RuleKey) -> Optional[InterventionId]:
    """Map a caller-supplied id to an InterventionId, or None if unknown."""
    if isinstance(rule_id, InterventionId):
        return rule_id
    if not isinstance(rule_id, str):
        return None
    try:
        return InterventionId(rule_id.strip().lower())
    except ValueError:
        return None


# ── Rule schema ──────────────────────────────────────────────────────────────

class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class RescueAllergyException(_FrozenModel):
    """
    Opt-in downgrade of a self-allergy hard block to an override-able warning.

    Only for rescue interventions where withholding the drug is deadlier than
    the allergic reaction (epinephrine in anaphylaxis).
    """
    rationale: str
    confirmation_text: str


class ContraindicationRule(_FrozenModel):
    """
    One contraindication, triggered either by a patient condition or by a
    vital sign crossing a threshold.
    """
    conditions: Tuple[str, ...] = ()
    vital_sign: Optional[VitalSignName] = None
    below: Optional[float] = None
    above: Optional[float] = None
    severity: Literal["hard_block", "warning", "caution"]
    message: str
    rationale: str
    confirmation_text: Optional[str] = None
    requires_justification: bool = True

    @model_validator(mode="after")
    def _check_trigger(self) -> "ContraindicationRule":
        if bool(self.conditions) == (self.vital_sign is not None):
            raise ValueError("contraindication needs exactly one of 'conditions' or 'vital_sign'")
        if self.vital_sign is not None and self.below is None and self.above is None:
            raise ValueError("vital-sign contraindication needs 'below' or 'above'")
        if self.severity == "warning" and not self.confirmation_text:
            raise ValueError("warning contraindication needs 'confirmation_text'")
        return self


class InteractionRule(_FrozenModel):
    drugs: Tuple[str, ...] = Field(min_length=1)
    severity: Literal["hard_block", "warning"]
    message: str
    confirmation_text: str = "I understand the interaction risk and will monitor closely"


class InterventionRule(_FrozenModel):
    """Dose and safety configuration for one intervention."""
    id: InterventionId
    name: str
    per_kg_rate: PositiveFloat
    max_dose: PositiveFloat
    unit: str
    precision: int = Field(default=2, ge=0, le=4)
    pediatric_ceiling_weight_kg: Optional[PositiveFloat] = None
    allergens: Tuple[str, ...] = ()
    rescue_allergy_exception: Optional[RescueAllergyException] = None
    contraindications: Tuple[ContraindicationRule, ...] = ()
    interactions: Optional[InteractionRule] = None
    neonatal_caution: bool = False


class InterventionRuleTable(_FrozenModel):
    version: str
    rules: Tuple[InterventionRule, ...]


# ── Rule set ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class InterventionRuleSet:
    """Read-only id → rule mapping with its table version."""
    version: str
    rules: Mapping[InterventionId, InterventionRule]

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[InterventionRule],
        version: str = "custom",
        require_all: bool = False,
    ) -> "InterventionRuleSet":
        mapping = {}
        for rule in rules:
            if rule.id in mapping:
                raise RuleConfigurationError(
                    f"Duplicate intervention rule: {rule.id.value}",
                    table="intervention_rules",
                )
            mapping[rule.id] = rule

        if require_all:
            missing = [i.value for i in InterventionId if i not in mapping]
            if missing:
                raise RuleConfigurationError(
                    f"Intervention rule table is missing: {', '.join(missing)}",
                    table="intervention_rules",
                    details={"missing": missing},
                )

        return cls(version=version, rules=MappingProxyType(mapping))

    def get(self, rule_id: RuleKey) -> Optional[InterventionRule]:
        key = resolve_intervention_id(rule_id)
        if key is None:
            return None
        return self.rules.get(key)

    def __contains__(self, rule_id: RuleKey) -> bool:
        return self.get(rule_id) is not None

    def __len__(self) -> int:
        return len(self.rules)


@lru_cache(maxsize=8)
def load_intervention_rules(path: Optional[Path] = None) -> InterventionRuleSet:
    """Load (once per path) and validate the intervention rule table."""
    table_path = Path(path) if path else settings.resolved_intervention_rules_path
    table = read_table(table_path, InterventionRuleTable, "intervention_rules")
    rule_set = InterventionRuleSet.from_rules(table.rules, version=table.version, require_all=True)
    logger.debug(f"Intervention rules ready: {len(rule_set)} rules")
    return rule_set


def default_intervention_rules() -> InterventionRuleSet:
    return load_intervention_rules(settings.resolved_intervention_rules_path)
