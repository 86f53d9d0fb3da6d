"""
Protocol State Tracker

Usage:
    from paedsguard.core.protocols import ProtocolTracker

    tracker = ProtocolTracker()
    run = tracker.start_protocol(patient_id="p-17", protocol_id="septic_shock")
    tracker.complete_step(run, 3)                       # adherence 60 %
    tracker.get_decision_branch("septic_shock.3", "no") # → septic_shock.4
    tracker.end_protocol(run, "improved")
"""
from .model import (
    AdherenceProgress,
    AdherenceRecord,
    AdherenceStats,
    AdherenceStatus,
    BranchResult,
    Decision,
    DecisionPoint,
    Protocol,
    ProtocolCatalog,
    ProtocolCategory,
    ProtocolId,
    ProtocolOutcome,
    ProtocolStep,
    default_protocol_catalog,
    load_protocol_catalog,
)
from .recommendations import ProtocolRecommendation, recommend_protocols
from .stats import page_history, summarise_adherence
from .store import AdherenceStore, InMemoryAdherenceStore
from .tracker import PROTOCOL_COMPLETE, ProtocolTracker
from .transitions import (
    ProtocolAbandoned,
    ProtocolEnded,
    StepCompleted,
    adherence_score,
    apply_event,
)

__all__ = [
    "AdherenceProgress",
    "AdherenceRecord",
    "AdherenceStats",
    "AdherenceStatus",
    "BranchResult",
    "Decision",
    "DecisionPoint",
    "Protocol",
    "ProtocolCatalog",
    "ProtocolCategory",
    "ProtocolId",
    "ProtocolOutcome",
    "ProtocolStep",
    "default_protocol_catalog",
    "load_protocol_catalog",
    "ProtocolRecommendation",
    "recommend_protocols",
    "page_history",
    "summarise_adherence",
    "AdherenceStore",
    "InMemoryAdherenceStore",
    "PROTOCOL_COMPLETE",
    "ProtocolTracker",
    "ProtocolAbandoned",
    "ProtocolEnded",
    "StepCompleted",
    "adherence_score",
    "apply_event",
]
