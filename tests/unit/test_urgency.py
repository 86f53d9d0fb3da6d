"""
Unit Tests for Time-to-Death Urgency Scoring
"""
import pytest

from paedsguard.core.urgency import (
    Diagnosis,
    DiagnosisId,
    UrgencyScore,
    UrgencyTable,
    UrgencyTier,
    rank_by_urgency,
    score_urgency,
)
from paedsguard.utils import RuleConfigurationError, ValidationError


class TestScoreUrgency:

    def test_tension_pneumothorax(self, urgency_table):
        score = score_urgency("tension_pneumothorax", urgency_table)

        assert score.tier == UrgencyTier.TIER_1_MINUTES
        assert score.priority == 10
        assert score.time_to_death_minutes == 5

    def test_unknown_diagnosis_gets_conservative_default(self, urgency_table):
        score = score_urgency("mystery_rash", urgency_table)

        assert score.tier == UrgencyTier.TIER_2_HOURS
        assert score.priority == 6
        assert score.time_to_death_minutes == 180

    def test_accepts_enum(self, urgency_table):
        assert score_urgency(DiagnosisId.PNEUMONIA, urgency_table).tier == UrgencyTier.TIER_3_DAYS

    def test_every_tier_1_outranks_every_tier_3(self, urgency_table):
        tier_1 = [s.priority for s in urgency_table.entries.values() if s.tier == UrgencyTier.TIER_1_MINUTES]
        tier_3 = [s.priority for s in urgency_table.entries.values() if s.tier == UrgencyTier.TIER_3_DAYS]

        assert min(tier_1) > max(tier_3)


class TestRankByUrgency:

    def test_urgency_beats_probability(self, urgency_table):
        ranked = rank_by_urgency([
            Diagnosis("pneumonia", 0.9),
            Diagnosis("tension_pneumothorax", 0.05),
        ], urgency_table)

        assert [d.id for d in ranked] == ["tension_pneumothorax", "pneumonia"]

    def test_probability_breaks_priority_ties(self, urgency_table):
        """Meningitis and stroke are both tier 2, priority 8."""
        ranked = rank_by_urgency([
            Diagnosis("bacterial_meningitis", 0.3),
            Diagnosis("stroke", 0.6),
        ], urgency_table)

        assert [d.id for d in ranked] == ["stroke", "bacterial_meningitis"]

    def test_more_urgent_tier_wins_equal_priority(self, urgency_table):
        """Septic shock (tier 2, priority 9) never outranks hypovolemic shock (tier 1, priority 9)."""
        ranked = rank_by_urgency([
            Diagnosis("septic_shock", 0.8),
            Diagnosis("shock_hypovolemic", 0.1),
        ], urgency_table)

        assert [d.id for d in ranked] == ["shock_hypovolemic", "septic_shock"]

    def test_exact_ties_keep_input_order(self, urgency_table):
        ranked = rank_by_urgency([
            Diagnosis("mystery_a", 0.5),
            Diagnosis("mystery_b", 0.5),
            Diagnosis("mystery_c", 0.5),
        ], urgency_table)

        assert [d.id for d in ranked] == ["mystery_a", "mystery_b", "mystery_c"]

    def test_unknown_ranks_below_tier_1_above_tier_3(self, urgency_table):
        ranked = rank_by_urgency([
            Diagnosis("cellulitis", 0.9),
            Diagnosis("mystery_rash", 0.1),
            Diagnosis("anaphylaxis", 0.1),
        ], urgency_table)

        assert [d.id for d in ranked] == ["anaphylaxis", "mystery_rash", "cellulitis"]

    def test_ranked_diagnoses_carry_urgency(self, urgency_table):
        candidate = Diagnosis("dka", 0.4, name="Diabetic ketoacidosis")

        ranked = rank_by_urgency([candidate], urgency_table)

        assert ranked[0].urgency.tier == UrgencyTier.TIER_2_HOURS
        assert ranked[0].name == "Diabetic ketoacidosis"
        assert candidate.urgency is None

    def test_empty_input(self, urgency_table):
        assert rank_by_urgency([], urgency_table) == []

    @pytest.mark.parametrize("probability", [-0.1, 1.5])
    def test_probability_out_of_range(self, probability):
        with pytest.raises(ValidationError):
            Diagnosis("dka", probability)


class TestUrgencyTable:

    def test_packaged_table_covers_every_diagnosis(self, urgency_table):
        assert set(urgency_table.entries) == set(DiagnosisId)

    def test_overlapping_priority_bands_rejected(self):
        entries = {
            DiagnosisId.ANAPHYLAXIS: UrgencyScore(UrgencyTier.TIER_1_MINUTES, 10, "10 minutes", 5),
            DiagnosisId.PNEUMONIA:   UrgencyScore(UrgencyTier.TIER_3_DAYS, 4320, "3 days", 9),
        }
        default = UrgencyScore(UrgencyTier.TIER_2_HOURS, 180, "3-6 hours", 6)

        with pytest.raises(RuleConfigurationError) as exc_info:
            UrgencyTable.build(entries, default)

        assert exc_info.value.code == "RULE_CONFIG_ERROR"

    def test_incomplete_table_rejected_when_required(self):
        entries = {
            DiagnosisId.ANAPHYLAXIS: UrgencyScore(UrgencyTier.TIER_1_MINUTES, 10, "10 minutes", 10),
        }
        default = UrgencyScore(UrgencyTier.TIER_2_HOURS, 180, "3-6 hours", 6)

        with pytest.raises(RuleConfigurationError) as exc_info:
            UrgencyTable.build(entries, default, require_all=True)

        assert "pneumonia" in exc_info.value.details["missing"]

    def test_custom_table_used_for_ranking(self):
        entries = {
            DiagnosisId.PNEUMONIA: UrgencyScore(UrgencyTier.TIER_1_MINUTES, 30, "30 minutes", 10),
        }
        default = UrgencyScore(UrgencyTier.TIER_2_HOURS, 180, "3-6 hours", 6)
        table = UrgencyTable.build(entries, default)

        ranked = rank_by_urgency([Diagnosis("anaphylaxis", 0.9), Diagnosis("pneumonia", 0.1)], table)

        assert ranked[0].id == "pneumonia"
