"""
Adherence reporting: per-provider statistics and run history.
"""
from __future__ import annotations

from typing import Iterable, List

import numpy as np

from paedsguard.utils import ValidationError
from .model import AdherenceRecord, AdherenceStats, AdherenceStatus, ProtocolOutcome


def summarise_adherence(records: Iterable[AdherenceRecord]) -> AdherenceStats:
    """
    Aggregate a provider's runs.

    Mean adherence covers completed runs only and is rounded to one decimal.
    Every outcome classification appears in the breakdown, zero or not.
    """
    records = list(records)
    completed = [r for r in records if r.status == AdherenceStatus.COMPLETED]

    if completed:
        scores = np.array([r.adherence_score for r in completed], dtype=float)
        mean_adherence = round(float(np.mean(scores)), 1)
    else:
        mean_adherence = 0.0

    breakdown = {o.value: 0 for o in ProtocolOutcome}
    for r in completed:
        outcome = r.outcome or ProtocolOutcome.UNKNOWN
        breakdown[outcome.value] += 1

    return AdherenceStats(
        total_runs=len(records),
        completed_runs=len(completed),
        mean_adherence=mean_adherence,
        outcome_breakdown=breakdown,
    )


def page_history(records: Iterable[AdherenceRecord], limit: int = 10, offset: int = 0) -> List[AdherenceRecord]:
    """Newest first by start time, then sliced."""
    if limit < 0 or offset < 0:
        raise ValidationError("limit and offset must be non-negative", field="limit")
    ordered = sorted(records, key=lambda r: r.start_time, reverse=True)
    return ordered[offset:offset + limit]
