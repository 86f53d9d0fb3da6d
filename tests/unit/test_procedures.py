"""
Unit Tests for Procedure Guardrails

Fluid bolus count, epinephrine interval and defibrillation energy.
"""
from datetime import datetime, timedelta, timezone

import pytest

from paedsguard.core.safety import (
    Severity,
    check_defibrillation_energy,
    check_epinephrine_interval,
    check_fluid_bolus_count,
)
from paedsguard.utils import ValidationError

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestFluidBolusCount:

    @pytest.mark.parametrize("count", [0, 1])
    def test_early_boluses_safe(self, count):
        assert check_fluid_bolus_count(count).severity == Severity.SAFE

    def test_second_bolus_needs_reassessment(self):
        verdict = check_fluid_bolus_count(2)

        assert verdict.severity == Severity.WARNING
        assert verdict.override.requires_justification is True

    @pytest.mark.parametrize("count", [3, 5])
    def test_third_bolus_blocked(self, count):
        verdict = check_fluid_bolus_count(count)

        assert verdict.severity == Severity.HARD_BLOCK
        assert "inotropes" in verdict.rationale

    def test_negative_count(self):
        with pytest.raises(ValidationError):
            check_fluid_bolus_count(-1)


class TestEpinephrineInterval:

    def test_too_soon_blocked(self):
        verdict = check_epinephrine_interval(NOW - timedelta(minutes=2), now=NOW)

        assert verdict.severity == Severity.HARD_BLOCK
        assert "2 minutes" in verdict.message

    def test_within_window_safe(self):
        assert check_epinephrine_interval(NOW - timedelta(minutes=4), now=NOW).severity == Severity.SAFE

    @pytest.mark.parametrize("minutes", [3, 5])
    def test_window_bounds_inclusive(self, minutes):
        verdict = check_epinephrine_interval(NOW - timedelta(minutes=minutes), now=NOW)
        assert verdict.severity == Severity.SAFE

    def test_overdue_is_caution(self):
        verdict = check_epinephrine_interval(NOW - timedelta(minutes=7), now=NOW)

        assert verdict.severity == Severity.CAUTION
        assert "7 minutes" in verdict.message

    def test_future_dose_rejected(self):
        with pytest.raises(ValidationError):
            check_epinephrine_interval(NOW + timedelta(minutes=1), now=NOW)


class TestDefibrillationEnergy:
    """20 kg child: 40 J recommended, 80 J maximum."""

    def test_recommended_energy_safe(self):
        assert check_defibrillation_energy(40, 20).severity == Severity.SAFE

    def test_above_four_joules_per_kg_blocked(self):
        verdict = check_defibrillation_energy(100, 20)

        assert verdict.severity == Severity.HARD_BLOCK
        assert "80 J" in verdict.message

    def test_absolute_maximum(self):
        verdict = check_defibrillation_energy(250, 70)

        assert verdict.severity == Severity.HARD_BLOCK
        assert "200 J" in verdict.message

    def test_low_energy_warning(self):
        verdict = check_defibrillation_energy(15, 20)

        assert verdict.severity == Severity.WARNING
        assert "40 J" in verdict.rationale

    @pytest.mark.parametrize("energy, weight", [(0, 20), (-10, 20), (40, 0)])
    def test_invalid_inputs(self, energy, weight):
        with pytest.raises(ValidationError):
            check_defibrillation_energy(energy, weight)


class TestEpinephrineIntervalTimestamps:

    def test_naive_last_dose_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            check_epinephrine_interval(datetime.now() - timedelta(minutes=4))
        assert exc_info.value.field == "last_dose_time"

    def test_naive_now_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            check_epinephrine_interval(NOW - timedelta(minutes=4), now=NOW.replace(tzinfo=None))
        assert exc_info.value.field == "now"

    def test_non_datetime_rejected(self):
        with pytest.raises(ValidationError):
            check_epinephrine_interval("2026-03-01T09:26:00Z", now=NOW)

    def test_other_timezone_compared_correctly(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        last = (NOW - timedelta(minutes=4)).astimezone(ist)

        assert check_epinephrine_interval(last, now=NOW).severity == Severity.SAFE

    def test_default_clock_is_aware(self):
        recent = datetime.now(timezone.utc) - timedelta(minutes=1)
        assert check_epinephrine_interval(recent).severity == Severity.HARD_BLOCK
