"""
Urgency Scorer

Usage:
    from paedsguard.core.urgency import Diagnosis, rank_by_urgency

    ranked = rank_by_urgency([
        Diagnosis("pneumonia", 0.7),
        Diagnosis("tension_pneumothorax", 0.1),
    ])
    # tension_pneumothorax first regardless of probability
"""
from .scorer import (
    Diagnosis,
    DiagnosisId,
    UrgencyScore,
    UrgencyTable,
    UrgencyTier,
    default_urgency_table,
    enrich_with_urgency,
    load_urgency_table,
    rank_by_urgency,
    score_urgency,
)

__all__ = [
    "Diagnosis",
    "DiagnosisId",
    "UrgencyScore",
    "UrgencyTable",
    "UrgencyTier",
    "default_urgency_table",
    "enrich_with_urgency",
    "load_urgency_table",
    "rank_by_urgency",
    "score_urgency",
]
