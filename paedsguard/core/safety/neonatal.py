"""
Neonatal (NRP) Guardrails

Weight plausibility for gestational age and per-dose limits for the small
set of drugs used in neonatal resuscitation. NRP doses are checked against
a proposed value rather than computed, because the clinician usually draws
up from a fixed concentration.

The weight bands and drug limits live in ``data/nrp_rules.json``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from paedsguard.config import settings
from paedsguard.core.patient import validate_timestamp, validate_weight
from paedsguard.core.tables import read_table
from paedsguard.utils import get_logger, RuleConfigurationError, ValidationError
from .base import SafetyVerdict

logger = get_logger(__name__)

# Absolute neonatal weight bounds (kg)
NEONATAL_MIN_VIABLE_KG = 0.3
NEONATAL_MAX_KG        = 6.0


class GestationalCategory(str, Enum):
    EXTREMELY_PRETERM = "extremely_preterm"   # < 28 weeks
    VERY_PRETERM      = "very_preterm"        # 28-32 weeks
    MODERATE_PRETERM  = "moderate_preterm"    # 32-37 weeks
    TERM              = "term"                # ≥ 37 weeks


class NrpDrugId(str, Enum):
    EPINEPHRINE_IV  = "nrp_epinephrine_iv"
    EPINEPHRINE_ETT = "nrp_epinephrine_ett"
    VOLUME_EXPANDER = "nrp_normal_saline"
    DEXTROSE_10     = "nrp_dextrose_10"
    BICARBONATE     = "nrp_bicarbonate"
    NALOXONE        = "nrp_naloxone"


# ── Table ────────────────────────────────────────────────────────────────────

class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class WeightBand(_FrozenModel):
    """Expected birth weight (kg) for one gestational category."""
    min_weight: float = Field(gt=0)
    max_weight: float = Field(gt=0)
    typical_min: float = Field(gt=0)
    typical_max: float = Field(gt=0)

    @model_validator(mode="after")
    def _ordered(self) -> "WeightBand":
        if not self.min_weight <= self.typical_min <= self.typical_max <= self.max_weight:
            raise ValueError("weight band must satisfy min <= typical_min <= typical_max <= max")
        return self


class NrpDrugRule(_FrozenModel):
    drug_id: NrpDrugId
    unit: str
    max_dose_per_kg: float = Field(gt=0)
    max_total_dose: float = Field(gt=0)
    min_interval_seconds: int = Field(ge=0)
    max_doses_per_resuscitation: int = Field(ge=1)
    contraindications: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


class NrpRuleTable(_FrozenModel):
    version: str
    weight_bands: Dict[GestationalCategory, WeightBand]
    drugs: List[NrpDrugRule]


@dataclass(frozen=True)
class NrpRuleSet:
    """Read-only weight bands and drug rules with their table version."""
    version: str
    weight_bands: Mapping[GestationalCategory, WeightBand]
    drugs: Mapping[NrpDrugId, NrpDrugRule]

    @classmethod
    def build(
        cls,
        weight_bands: Mapping[GestationalCategory, WeightBand],
        drugs: Iterable[NrpDrugRule],
        version: str = "custom",
    ) -> "NrpRuleSet":
        missing_bands = [c.value for c in GestationalCategory if c not in weight_bands]
        if missing_bands:
            raise RuleConfigurationError(
                f"NRP weight bands are missing: {', '.join(missing_bands)}",
                table="nrp_rules",
                details={"missing": missing_bands},
            )

        mapping = {}
        for rule in drugs:
            if rule.drug_id in mapping:
                raise RuleConfigurationError(
                    f"Duplicate NRP drug rule: {rule.drug_id.value}",
                    table="nrp_rules",
                )
            mapping[rule.drug_id] = rule

        return cls(
            version=version,
            weight_bands=MappingProxyType(dict(weight_bands)),
            drugs=MappingProxyType(mapping),
        )

    def get(self, drug_id) -> Optional[NrpDrugRule]:
        try:
            return self.drugs.get(NrpDrugId(drug_id))
        except ValueError:
            return None


@lru_cache(maxsize=8)
def load_nrp_rules(path: Optional[Path] = None) -> NrpRuleSet:
    """Load (once per path) and validate the NRP rule table."""
    table_path = Path(path) if path else settings.resolved_nrp_rules_path
    table = read_table(table_path, NrpRuleTable, "nrp_rules")
    return NrpRuleSet.build(table.weight_bands, table.drugs, version=table.version)


def default_nrp_rules() -> NrpRuleSet:
    return load_nrp_rules(settings.resolved_nrp_rules_path)


# ── Weight ───────────────────────────────────────────────────────────────────

def gestational_category(gestational_weeks: float) -> GestationalCategory:
    if gestational_weeks < 28:
        return GestationalCategory.EXTREMELY_PRETERM
    if gestational_weeks < 32:
        return GestationalCategory.VERY_PRETERM
    if gestational_weeks < 37:
        return GestationalCategory.MODERATE_PRETERM
    return GestationalCategory.TERM


def validate_neonatal_weight(
    weight_kg: float,
    gestational_weeks: float,
    rules: Optional[NrpRuleSet] = None,
) -> SafetyVerdict:
    """Check a neonatal weight against the expected band for gestational age."""
    weight = validate_weight(weight_kg)
    if gestational_weeks <= 0:
        raise ValidationError(
            f"Gestational age must be positive, got {gestational_weeks}",
            field="gestational_weeks",
        )

    if weight < NEONATAL_MIN_VIABLE_KG:
        return SafetyVerdict.hard_block(
            "Weight below viable limit (< 300g)",
            "Verify weight measurement. Consider palliative care discussion if accurate.",
            check="neonatal_weight",
        )
    if weight > NEONATAL_MAX_KG:
        return SafetyVerdict.hard_block(
            "Weight exceeds neonatal range (> 6 kg)",
            "Use pediatric protocols instead of NRP for infants > 6 kg.",
            check="neonatal_weight",
        )

    rules = rules if rules is not None else default_nrp_rules()
    band = rules.weight_bands[gestational_category(gestational_weeks)]

    if weight < band.min_weight:
        return SafetyVerdict.warning(
            f"Weight ({weight:g} kg) is below expected minimum for {gestational_weeks:g} weeks gestation",
            "Verify weight. Consider IUGR. Adjust drug doses carefully.",
            confirmation_text="I have verified the weight measurement",
            check="neonatal_weight",
        )
    if weight > band.max_weight:
        return SafetyVerdict.warning(
            f"Weight ({weight:g} kg) exceeds expected maximum for {gestational_weeks:g} weeks gestation",
            "Verify gestational age. Consider macrosomia. Check for diabetic mother.",
            confirmation_text="I have verified weight and gestational age",
            check="neonatal_weight",
        )
    if not band.typical_min <= weight <= band.typical_max:
        return SafetyVerdict.caution(
            f"Weight ({weight:g} kg) is outside typical range for {gestational_weeks:g} weeks",
            "Weight is acceptable but verify measurement.",
            check="neonatal_weight",
        )

    return SafetyVerdict.safe(
        "Weight is within expected range for gestational age",
        f"Expected {band.typical_min:g}-{band.typical_max:g} kg",
        check="neonatal_weight",
    )


# ── Drugs ────────────────────────────────────────────────────────────────────

def check_nrp_dose(
    drug_id: str,
    weight_kg: float,
    proposed_dose: float,
    previous_dose_times: Sequence[datetime] = (),
    now: Optional[datetime] = None,
    rules: Optional[NrpRuleSet] = None,
) -> SafetyVerdict:
    """
    Check a proposed neonatal dose.

    Order: per-kg maximum, absolute maximum, doses-per-resuscitation,
    minimum interval, then standing drug warnings. Dose times must be
    timezone-aware.
    """
    weight = validate_weight(weight_kg)
    previous_dose_times = [validate_timestamp(t, "previous_dose_times") for t in previous_dose_times]
    rules = rules if rules is not None else default_nrp_rules()
    rule = rules.get(drug_id)
    if rule is None:
        return SafetyVerdict.caution(
            "No safety rules defined for this drug",
            "Verify dose manually against NRP guidelines",
            check="nrp_dose",
        )

    max_dose = rule.max_dose_per_kg * weight
    if proposed_dose > max_dose:
        return SafetyVerdict.hard_block(
            f"Dose exceeds maximum ({proposed_dose:.3f} > {max_dose:.3f} {rule.unit})",
            f"Maximum dose is {rule.max_dose_per_kg:g} {rule.unit}/kg = {max_dose:.3f} {rule.unit} for {weight:g} kg",
            check="nrp_dose",
        )
    if proposed_dose > rule.max_total_dose:
        return SafetyVerdict.hard_block(
            f"Dose exceeds absolute maximum ({proposed_dose:.3f} > {rule.max_total_dose:g} {rule.unit})",
            f"Absolute maximum dose is {rule.max_total_dose:g} {rule.unit}",
            check="nrp_dose",
        )

    if len(previous_dose_times) >= rule.max_doses_per_resuscitation:
        return SafetyVerdict.warning(
            f"Maximum doses per resuscitation reached ({rule.max_doses_per_resuscitation})",
            "Consider other causes of poor response. Consult senior clinician.",
            confirmation_text="I have considered other causes of poor response",
            check="nrp_dose",
        )

    if previous_dose_times:
        now = validate_timestamp(now, "now") if now is not None else datetime.now(timezone.utc)
        since_last = (now - max(previous_dose_times)).total_seconds()
        if since_last < rule.min_interval_seconds:
            remaining = int(rule.min_interval_seconds - since_last + 0.999)
            return SafetyVerdict.warning(
                f"Too soon since last dose ({int(since_last)}s < {rule.min_interval_seconds}s minimum)",
                f"Wait {remaining} more seconds before next dose",
                confirmation_text="I understand this dose is earlier than the minimum interval",
                check="nrp_dose",
            )

    if rule.warnings:
        return SafetyVerdict.caution(
            "Dose is within safe limits",
            ". ".join(rule.warnings),
            check="nrp_dose",
        )
    return SafetyVerdict.safe("Dose is within safe limits", "", check="nrp_dose")


def check_nrp_contraindications(
    drug_id: str,
    conditions: Iterable[str],
    rules: Optional[NrpRuleSet] = None,
) -> SafetyVerdict:
    """Either text containing the other counts as a match."""
    rules = rules if rules is not None else default_nrp_rules()
    rule = rules.get(drug_id)
    conditions = [c.lower() for c in conditions if c]

    matched = []
    if rule is not None:
        for contra in rule.contraindications:
            lowered = contra.lower()
            if any(c in lowered or lowered in c for c in conditions):
                matched.append(contra)

    if matched:
        logger.info(f"NRP contraindication for {drug_id}: {', '.join(matched)}")
        return SafetyVerdict.hard_block(
            f"Contraindicated: {', '.join(matched)}",
            "Do NOT administer this medication. Consider alternatives.",
            check="nrp_contraindication",
        )

    return SafetyVerdict.safe(
        "No contraindications identified",
        "Patient conditions do not match any NRP contraindication",
        check="nrp_contraindication",
    )
