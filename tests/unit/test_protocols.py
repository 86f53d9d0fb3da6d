"""
Unit Tests for the Protocol State Tracker

Adherence lifecycle, decision branches, reporting, concurrency and the
pure transition function.
"""
import threading
from datetime import datetime, timezone

import pytest

from paedsguard.core.protocols import (
    AdherenceRecord,
    AdherenceStatus,
    InMemoryAdherenceStore,
    PROTOCOL_COMPLETE,
    Protocol,
    ProtocolCategory,
    ProtocolEnded,
    ProtocolId,
    ProtocolOutcome,
    ProtocolTracker,
    StepCompleted,
    adherence_score,
    apply_event,
    recommend_protocols,
)
from paedsguard.utils import (
    ConcurrentUpdateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


class TestAdherenceLifecycle:
    """start → in_progress → completed | abandoned."""

    def test_five_step_run(self, tracker):
        run = tracker.start_protocol("patient-1", "septic_shock")
        assert tracker.get_record(run).status == AdherenceStatus.STARTED

        progress = tracker.complete_step(run, 3)
        assert progress.adherence_score == 60
        assert progress.status == AdherenceStatus.IN_PROGRESS

        tracker.complete_step(run, 5)
        final = tracker.end_protocol(run, "improved")

        assert final.status == AdherenceStatus.COMPLETED
        assert final.outcome == ProtocolOutcome.IMPROVED
        assert final.adherence_score == 100

        with pytest.raises(InvalidStateError):
            tracker.complete_step(run, 4)

    def test_rejected_update_leaves_record_unchanged(self, tracker):
        run = tracker.start_protocol("patient-1", "septic_shock")
        tracker.complete_step(run, 2)
        tracker.end_protocol(run, "stable", notes="handed over")
        before = tracker.get_record(run)

        with pytest.raises(InvalidStateError):
            tracker.complete_step(run, 5)
        with pytest.raises(InvalidStateError):
            tracker.end_protocol(run, "improved")
        with pytest.raises(InvalidStateError):
            tracker.abandon_protocol(run)

        assert tracker.get_record(run) == before

    def test_record_fields_after_completion(self, tracker):
        run = tracker.start_protocol(17, "severe_malaria", provider_id=4)
        tracker.complete_step(run, 1, notes="RDT positive")
        tracker.end_protocol(run, "transferred", notes="to regional hospital")

        record = tracker.get_record(run)

        assert record.patient_id == "17"
        assert record.provider_id == "4"
        assert record.total_steps == 4
        assert record.steps_completed == 1
        assert record.adherence_score == 25
        assert record.notes == "to regional hospital"
        assert record.step_notes == ((1, "RDT positive"),)
        assert record.end_time > record.start_time
        assert record.to_dict()["status"] == "completed"

    def test_steps_completed_never_decreases(self, tracker):
        run = tracker.start_protocol("patient-1", "septic_shock")
        tracker.complete_step(run, 4)

        progress = tracker.complete_step(run, 2)

        assert progress.steps_completed == 4
        assert progress.adherence_score == 80

    @pytest.mark.parametrize("step", [0, 6, -1, 2.5, "3"])
    def test_step_out_of_range(self, tracker, step):
        run = tracker.start_protocol("patient-1", "septic_shock")

        with pytest.raises(ValidationError):
            tracker.complete_step(run, step)

        assert tracker.get_record(run).version == 0

    def test_abandon(self, tracker):
        run = tracker.start_protocol("patient-1", "severe_dehydration")
        tracker.complete_step(run, 1)

        progress = tracker.abandon_protocol(run, notes="parents declined admission")

        assert progress.status == AdherenceStatus.ABANDONED
        assert tracker.get_record(run).end_time is not None
        with pytest.raises(InvalidStateError):
            tracker.complete_step(run, 2)

    def test_unknown_outcome(self, tracker):
        run = tracker.start_protocol("patient-1", "septic_shock")
        with pytest.raises(ValidationError):
            tracker.end_protocol(run, "cured")

    @pytest.mark.parametrize("outcome", ["improved", "cured"])
    def test_ending_a_finished_run_is_invalid_state(self, tracker, outcome):
        """A terminal run reports its state even when the outcome is also bad."""
        run = tracker.start_protocol("patient-1", "septic_shock")
        tracker.end_protocol(run, "stable")

        with pytest.raises(InvalidStateError) as exc_info:
            tracker.end_protocol(run, outcome)

        assert exc_info.value.details["state"] == "completed"

    def test_unknown_protocol(self, tracker):
        with pytest.raises(NotFoundError) as exc_info:
            tracker.start_protocol("patient-1", "status_asthmaticus")
        assert exc_info.value.details["kind"] == "protocol"

    @pytest.mark.parametrize("patient_id", [None, "", "   "])
    def test_patient_id_required(self, tracker, patient_id):
        with pytest.raises(ValidationError):
            tracker.start_protocol(patient_id, "septic_shock")

    def test_unknown_record(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.complete_step("does-not-exist", 1)


class TestAdherenceScore:

    @pytest.mark.parametrize("steps, total, expected", [
        (0, 5, 0),
        (3, 5, 60),
        (1, 3, 33),
        (2, 3, 67),
        (5, 5, 100),
        (199, 200, 99),
        (1, 8, 13),
    ])
    def test_score(self, steps, total, expected):
        assert adherence_score(steps, total) == expected


class TestDecisionBranches:

    def test_branch_to_step(self, tracker):
        result = tracker.get_decision_branch("septic_shock.3", "no")

        assert result.protocol_complete is False
        assert result.next_step_id == "septic_shock.4"
        assert result.next_step.title == "Reassess perfusion"

    def test_null_target_completes_protocol(self, tracker):
        result = tracker.get_decision_branch("septic_shock.4", "no")

        assert result.protocol_complete is True
        assert result.next_step is None
        assert result.message == PROTOCOL_COMPLETE

    def test_decision_is_case_insensitive(self, tracker):
        assert tracker.get_decision_branch("severe_malaria.1", "YES").next_step_id == "severe_malaria.2"

    def test_invalid_decision(self, tracker):
        with pytest.raises(ValidationError):
            tracker.get_decision_branch("septic_shock.3", "maybe")

    def test_step_without_decision_point(self, tracker):
        with pytest.raises(InvalidStateError) as exc_info:
            tracker.get_decision_branch("septic_shock.1", "yes")
        assert exc_info.value.state == "no_decision_point"

    def test_unknown_step(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.get_decision_branch("septic_shock.9", "yes")

    def test_get_decision_point(self, tracker):
        assert tracker.get_decision_point("septic_shock.1") is None
        assert "fluid overload" in tracker.get_decision_point("septic_shock.3").question

    def test_next_linear_step(self, tracker):
        assert tracker.next_linear_step("septic_shock.1").next_step_id == "septic_shock.2"
        assert tracker.next_linear_step("septic_shock.5").protocol_complete is True


class TestAdherenceReporting:

    def _run(self, tracker, provider, steps, outcome=None, abandon=False):
        run = tracker.start_protocol("patient", "septic_shock", provider_id=provider)
        if steps:
            tracker.complete_step(run, steps)
        if abandon:
            tracker.abandon_protocol(run)
        elif outcome:
            tracker.end_protocol(run, outcome)
        return run

    def test_stats(self, tracker):
        self._run(tracker, "dr-1", 5, "improved")
        self._run(tracker, "dr-1", 3, "stable")
        self._run(tracker, "dr-1", 2, abandon=True)
        self._run(tracker, "dr-2", 1, "deteriorated")

        stats = tracker.adherence_stats("dr-1")

        assert stats.total_runs == 3
        assert stats.completed_runs == 2
        assert stats.mean_adherence == 80.0
        assert stats.outcome_breakdown == {
            "improved": 1,
            "stable": 1,
            "deteriorated": 0,
            "transferred": 0,
            "unknown": 0,
        }
        assert tracker.adherence_stats().total_runs == 4

    def test_stats_without_runs(self, tracker):
        stats = tracker.adherence_stats("nobody")

        assert stats.total_runs == 0
        assert stats.mean_adherence == 0.0

    def test_history_newest_first(self, tracker):
        first = self._run(tracker, "dr-1", 1)
        second = self._run(tracker, "dr-1", 2)
        third = self._run(tracker, "dr-1", 3)

        page = tracker.adherence_history("dr-1", limit=2)
        assert [r.record_id for r in page] == [third, second]

        page = tracker.adherence_history("dr-1", limit=2, offset=2)
        assert [r.record_id for r in page] == [first]

    def test_history_rejects_negative_paging(self, tracker):
        with pytest.raises(ValidationError):
            tracker.adherence_history(limit=-1)


class TestConcurrency:

    def test_concurrent_steps_on_one_record(self, tracker):
        run = tracker.start_protocol("patient-1", "septic_shock")
        barrier = threading.Barrier(10)
        errors = []

        def worker(step):
            barrier.wait()
            try:
                tracker.complete_step(run, step)
            except Exception as exc:  # collected for the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(1 + i % 5,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = tracker.get_record(run)
        assert errors == []
        assert record.steps_completed == 5
        assert record.version == 10
        assert tracker._record_locks == {}

    def test_finished_runs_release_their_locks(self, tracker):
        for i in range(200):
            run = tracker.start_protocol(f"patient-{i}", "septic_shock")
            tracker.complete_step(run, 1)
            tracker.end_protocol(run, "improved")

        assert len(tracker._record_locks) == 0

    def test_rejected_updates_release_their_locks(self, tracker):
        run = tracker.start_protocol("patient-1", "septic_shock")
        tracker.abandon_protocol(run)

        with pytest.raises(InvalidStateError):
            tracker.complete_step(run, 2)
        with pytest.raises(NotFoundError):
            tracker.complete_step("does-not-exist", 1)

        assert tracker._record_locks == {}

    def test_lock_shared_per_record_not_across_records(self, tracker):
        first = tracker.start_protocol("patient-1", "septic_shock")
        second = tracker.start_protocol("patient-2", "septic_shock")

        lock_a = tracker._checkout_lock(first)
        lock_b = tracker._checkout_lock(second)
        lock_a_again = tracker._checkout_lock(first)

        assert lock_a is lock_a_again
        assert lock_a is not lock_b

        for record_id in (first, second, first):
            tracker._checkin_lock(record_id)
        assert tracker._record_locks == {}

    def test_lost_compare_and_swap(self, catalog, clock):
        class StaleStore(InMemoryAdherenceStore):
            def compare_and_swap(self, record_id, expected_version, record):
                return False

        tracker = ProtocolTracker(catalog=catalog, store=StaleStore(), clock=clock)
        run = tracker.start_protocol("patient-1", "septic_shock")

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            tracker.complete_step(run, 1)

        assert isinstance(exc_info.value, InvalidStateError)
        assert exc_info.value.code == "CONCURRENT_UPDATE"
        assert tracker.get_record(run).steps_completed == 0


class TestTransitions:

    @pytest.fixture
    def record(self):
        return AdherenceRecord(
            record_id="r-1",
            patient_id="p-1",
            protocol_id="septic_shock",
            total_steps=5,
            start_time=datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc),
        )

    def test_apply_event_is_pure(self, record):
        updated = apply_event(record, StepCompleted(2))

        assert record.steps_completed == 0
        assert record.version == 0
        assert updated.steps_completed == 2
        assert updated.version == 1

    def test_end_then_step_rejected(self, record):
        ended = apply_event(record, ProtocolEnded(ProtocolOutcome.UNKNOWN, record.start_time))

        with pytest.raises(InvalidStateError):
            apply_event(ended, StepCompleted(1))

    def test_unknown_event(self, record):
        with pytest.raises(TypeError):
            apply_event(record, "complete")


class TestProtocolCatalog:

    def test_packaged_catalog_covers_every_protocol(self, catalog):
        assert {p.id for p in catalog} == set(ProtocolId)

    def test_misnumbered_steps_rejected(self):
        with pytest.raises(ValueError):
            Protocol.model_validate({
                "id": "septic_shock",
                "name": "Broken",
                "category": "shock",
                "steps": [
                    {"step_id": "x.1", "step_number": 1, "title": "a", "instructions": "a"},
                    {"step_id": "x.3", "step_number": 3, "title": "b", "instructions": "b"},
                ],
            })

    def test_decision_target_must_exist(self):
        with pytest.raises(ValueError):
            Protocol.model_validate({
                "id": "septic_shock",
                "name": "Broken",
                "category": "shock",
                "steps": [{"step_id": "x.1", "step_number": 1, "title": "a", "instructions": "a"}],
                "decision_points": [
                    {"step_id": "x.1", "question": "?", "yes_next_step": "x.7", "no_next_step": None},
                ],
            })


class TestRecommendations:

    def test_meningitis_ranked_first(self, catalog):
        recs = recommend_protocols(
            ["Fever", "Neck stiffness"],
            {"temperature": 39.5},
            catalog,
        )

        top = recs[0]
        assert top.protocol_id == ProtocolId.BACTERIAL_MENINGITIS
        assert top.confidence == 55
        assert top.priority == "high"
        assert top.matching_vital_signs == ["High fever"]
        assert ProtocolId.SEVERE_DEHYDRATION not in {r.protocol_id for r in recs}

    def test_confidence_capped(self, catalog):
        recs = recommend_protocols(
            ["Cough", "Fast breathing", "Chest indrawing", "Inability to drink", "Lethargy"],
            {"temperature": 39, "respiratory_rate": 60, "heart_rate": 170, "oxygen_saturation": 85},
            catalog,
        )

        assert recs[0].protocol_id == ProtocolId.SEVERE_PNEUMONIA
        assert recs[0].confidence == 100
        assert recs[0].priority == "critical"
        assert recs[0].category == ProtocolCategory.PNEUMONIA

    def test_nothing_matches(self, catalog):
        assert recommend_protocols([], None, catalog) == []
