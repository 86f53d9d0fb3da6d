"""
Safety Guardrail Checks

Each check is pure: (InterventionRule, PatientState) → SafetyVerdict. Checks
know nothing about each other; precedence is applied by the evaluator.

Every drug-specific behaviour lives in the rule table. Nothing here branches
on an intervention id.
"""
from __future__ import annotations

from typing import Optional

from paedsguard.config import settings
from paedsguard.core.interventions import ContraindicationRule, InterventionRule
from paedsguard.core.patient import PatientState
from .base import SafetyVerdict, Severity

CHECK_ALLERGY           = "allergy"
CHECK_CONTRAINDICATION  = "contraindication"
CHECK_DOSE_LIMIT        = "dose_limit"
CHECK_INTERACTION       = "interaction"
CHECK_AGE               = "age"


def _contains_any(text: str, needles) -> bool:
    lowered = text.lower()
    return any(n.lower() in lowered for n in needles)


# ── Check 1: Allergy ─────────────────────────────────────────────────────────

def check_allergies(rule: InterventionRule, patient: PatientState) -> SafetyVerdict:
    """
    Hard block when a documented allergy names the drug or one of its
    components. Rules carrying a rescue exception downgrade to a warning whose
    override needs no written justification.
    """
    if not patient.allergies:
        return SafetyVerdict.safe(
            "No known allergies",
            "Patient has no documented allergies",
            check=CHECK_ALLERGY,
        )

    matched = next(
        (a for a in sorted(patient.allergies) if _contains_any(a, rule.allergens)),
        None,
    )
    if matched is None:
        return SafetyVerdict.safe(
            "No allergies to this medication",
            "Patient allergies do not include this drug or its components",
            check=CHECK_ALLERGY,
        )

    rescue = rule.rescue_allergy_exception
    if rescue is not None:
        return SafetyVerdict.warning(
            f"Patient has documented allergy to {matched}",
            rescue.rationale,
            confirmation_text=rescue.confirmation_text,
            requires_justification=False,
            check=CHECK_ALLERGY,
        )

    return SafetyVerdict.hard_block(
        f"ALLERGY ALERT: Patient allergic to {matched}",
        "Documented allergy is an absolute contraindication. Seek alternative therapy.",
        check=CHECK_ALLERGY,
    )


# ── Check 2: Contraindication ────────────────────────────────────────────────

def _contraindication_fires(entry: ContraindicationRule, patient: PatientState) -> bool:
    if entry.conditions:
        return any(patient.has_condition(c) for c in entry.conditions)

    value = patient.vital_signs.get(entry.vital_sign)
    if value is None:
        return False
    if entry.below is not None and value < entry.below:
        return True
    if entry.above is not None and value > entry.above:
        return True
    return False


def _verdict_for(entry: ContraindicationRule) -> SafetyVerdict:
    severity = Severity(entry.severity)
    if severity == Severity.WARNING:
        return SafetyVerdict.warning(
            entry.message,
            entry.rationale,
            confirmation_text=entry.confirmation_text,
            requires_justification=entry.requires_justification,
            check=CHECK_CONTRAINDICATION,
        )
    return SafetyVerdict(severity, entry.message, entry.rationale, check=CHECK_CONTRAINDICATION)


def check_contraindications(rule: InterventionRule, patient: PatientState) -> SafetyVerdict:
    """First matching contraindication entry, in table order."""
    for entry in rule.contraindications:
        if _contraindication_fires(entry, patient):
            return _verdict_for(entry)

    return SafetyVerdict.safe(
        "No contraindications detected",
        "Patient conditions do not contraindicate this drug",
        check=CHECK_CONTRAINDICATION,
    )


# ── Check 3: Dose limit ──────────────────────────────────────────────────────

def check_dose_limits(rule: InterventionRule, patient: PatientState) -> SafetyVerdict:
    """Caution (never a block) once weight passes the pediatric ceiling."""
    ceiling = rule.pediatric_ceiling_weight_kg
    if ceiling is None:
        return SafetyVerdict.safe(
            "No dose limits defined",
            "Drug has no specific pediatric weight ceiling",
            check=CHECK_DOSE_LIMIT,
        )

    if patient.weight > ceiling:
        return SafetyVerdict.caution(
            f"Weight ({patient.weight:g} kg) exceeds typical pediatric range",
            f"Use adult max dose of {rule.max_dose:g} {rule.unit}",
            check=CHECK_DOSE_LIMIT,
        )

    return SafetyVerdict.safe(
        "Dose within safe limits",
        "Weight-based dose is appropriate for patient",
        check=CHECK_DOSE_LIMIT,
    )


# ── Check 4: Drug interaction ────────────────────────────────────────────────

def check_interactions(rule: InterventionRule, patient: PatientState) -> SafetyVerdict:
    if not patient.current_medications:
        return SafetyVerdict.safe(
            "No current medications",
            "No drug interactions possible",
            check=CHECK_INTERACTION,
        )

    interaction = rule.interactions
    matched: Optional[str] = None
    if interaction is not None:
        matched = next(
            (m for m in sorted(patient.current_medications) if _contains_any(m, interaction.drugs)),
            None,
        )

    if matched is None:
        return SafetyVerdict.safe(
            "No drug interactions detected",
            "Current medications do not interact with this drug",
            check=CHECK_INTERACTION,
        )

    if interaction.severity == Severity.HARD_BLOCK.value:
        return SafetyVerdict.hard_block(
            f"INTERACTION: {matched} detected",
            interaction.message,
            check=CHECK_INTERACTION,
        )
    return SafetyVerdict.warning(
        f"INTERACTION: {matched} detected",
        interaction.message,
        confirmation_text=interaction.confirmation_text,
        check=CHECK_INTERACTION,
    )


# ── Check 5: Age appropriateness ─────────────────────────────────────────────

def check_age_appropriateness(rule: InterventionRule, patient: PatientState) -> SafetyVerdict:
    if patient.age < settings.neonatal_age_years and rule.neonatal_caution:
        return SafetyVerdict.warning(
            "CAUTION: Neonate (<1 month old)",
            "Limited safety data in neonates. Use with caution and consider specialist consultation.",
            confirmation_text="I understand this drug has limited neonatal safety data",
            check=CHECK_AGE,
        )

    return SafetyVerdict.safe(
        "Age-appropriate medication",
        "Drug is safe for this age group",
        check=CHECK_AGE,
    )
