"""
Protocol Recommendations

Scores each catalog protocol against presenting symptoms and vital signs so
the caller can offer the most likely protocol first. Points are additive and
capped at 100:

    +20 per presenting symptom found in the protocol's key symptoms
    +15 fever       > 38.5 °C    (malaria, pneumonia, meningitis)
    +15 tachypnea   > 40 /min    (pneumonia, diarrhea, shock)
    +15 tachycardia > 120 bpm    (shock, malaria, pneumonia)
    +20 hypoxemia   SpO2 < 92 %  (pneumonia, shock)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from paedsguard.core.patient import VitalSigns
from paedsguard.utils import get_logger
from .model import ProtocolCatalog, ProtocolCategory, ProtocolId, default_protocol_catalog

logger = get_logger(__name__)

SYMPTOM_POINTS = 20

_C = ProtocolCategory

# (label, vital sign, predicate, categories, points)
_VITAL_SIGN_RULES = (
    ("High fever",  "temperature",       lambda v: v > 38.5, {_C.MALARIA, _C.PNEUMONIA, _C.MENINGITIS}, 15),
    ("Tachypnea",   "respiratory_rate",  lambda v: v > 40,   {_C.PNEUMONIA, _C.DIARRHEA, _C.SHOCK},     15),
    ("Tachycardia", "heart_rate",        lambda v: v > 120,  {_C.SHOCK, _C.MALARIA, _C.PNEUMONIA},      15),
    ("Hypoxemia",   "oxygen_saturation", lambda v: v < 92,   {_C.PNEUMONIA, _C.SHOCK},                  20),
)


@dataclass(frozen=True)
class ProtocolRecommendation:
    protocol_id: ProtocolId
    protocol_name: str
    category: ProtocolCategory
    confidence: int
    priority: str
    matching_symptoms: List[str] = field(default_factory=list)
    matching_vital_signs: List[str] = field(default_factory=list)

    @property
    def reasoning(self) -> str:
        return (
            f"Matched {len(self.matching_symptoms)} symptoms and "
            f"{len(self.matching_vital_signs)} vital sign abnormalities"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol_id": self.protocol_id.value,
            "protocol_name": self.protocol_name,
            "category": self.category.value,
            "confidence": self.confidence,
            "priority": self.priority,
            "matching_symptoms": list(self.matching_symptoms),
            "matching_vital_signs": list(self.matching_vital_signs),
            "reasoning": self.reasoning,
        }


def _priority(confidence: int) -> str:
    if confidence > 70:
        return "critical"
    if confidence > 40:
        return "high"
    return "medium"


def recommend_protocols(
    symptoms: Optional[Iterable[str]] = None,
    vital_signs: Optional[VitalSigns] = None,
    catalog: Optional[ProtocolCatalog] = None,
) -> List[ProtocolRecommendation]:
    """Protocols with any match, highest confidence first."""
    catalog = catalog if catalog is not None else default_protocol_catalog()
    symptoms = [s.strip() for s in (symptoms or []) if s and s.strip()]
    if isinstance(vital_signs, dict):
        vital_signs = VitalSigns.from_dict(vital_signs)
    vital_signs = vital_signs or VitalSigns()

    recommendations = []
    for protocol in catalog:
        score = 0
        matched_symptoms = []
        matched_vitals = []

        key_symptoms = [k.lower() for k in protocol.key_symptoms]
        for symptom in symptoms:
            if any(symptom.lower() in k for k in key_symptoms):
                matched_symptoms.append(symptom)
                score += SYMPTOM_POINTS

        for label, vital, predicate, categories, points in _VITAL_SIGN_RULES:
            value = vital_signs.get(vital)
            if value is not None and predicate(value) and protocol.category in categories:
                matched_vitals.append(label)
                score += points

        confidence = min(score, 100)
        if confidence <= 0:
            continue

        recommendations.append(ProtocolRecommendation(
            protocol_id=protocol.id,
            protocol_name=protocol.name,
            category=protocol.category,
            confidence=confidence,
            priority=_priority(confidence),
            matching_symptoms=matched_symptoms,
            matching_vital_signs=matched_vitals,
        ))

    recommendations.sort(key=lambda r: r.confidence, reverse=True)
    if recommendations:
        top = recommendations[0]
        logger.debug(f"Protocol recommendation: {top.protocol_id.value} ({top.confidence}%, {top.priority})")
    return recommendations
