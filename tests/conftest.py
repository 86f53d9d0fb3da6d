"""
Pytest Configuration and Fixtures

Shared fixtures for the decision-support core tests.
"""
import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from paedsguard.core.interventions import default_intervention_rules
from paedsguard.core.patient import PatientState
from paedsguard.core.protocols import InMemoryAdherenceStore, ProtocolTracker, default_protocol_catalog
from paedsguard.core.urgency import default_urgency_table


@pytest.fixture
def rules():
    """Packaged intervention rule set."""
    return default_intervention_rules()


@pytest.fixture
def urgency_table():
    return default_urgency_table()


@pytest.fixture
def catalog():
    return default_protocol_catalog()


@pytest.fixture
def base_patient() -> PatientState:
    """Healthy 6-year-old, 20 kg, nothing documented."""
    return PatientState(age=6, weight=20)


@pytest.fixture
def clock():
    """Deterministic clock: advances one minute per call."""
    start = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(minutes=next(ticks))


@pytest.fixture
def store() -> InMemoryAdherenceStore:
    return InMemoryAdherenceStore()


@pytest.fixture
def tracker(catalog, store, clock) -> ProtocolTracker:
    return ProtocolTracker(catalog=catalog, store=store, clock=clock)
