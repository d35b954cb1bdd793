"""
Tests for the local data directory: profile persistence, the saved active
session and record validation.
"""

import json

import pytest

from lift_scheduler.core.autoregulation import advise_next_set
from lift_scheduler.core.models import (
    PerformedSet,
    PlannedSet,
    TrainingProfile,
    TrainingSession,
    TrainingSessionItem,
)
from lift_scheduler.core.session_runtime import SessionManager
from lift_scheduler.io.connectivity import StaticProbe
from lift_scheduler.io.local_store import LocalStore, default_data_dir
from lift_scheduler.io.remote import InMemoryRemoteStore
from lift_scheduler.io.serializers import (
    ValidationError,
    dict_to_operation,
    dict_to_training_profile,
    parse_key_values,
    validate_date,
    validate_weekdays,
)


def _session_and_item():
    session = TrainingSession(
        id="s1", user_id="u1", mode="manual", goals={"build_strength": 1.0},
        started_at="2026-03-02T18:00:00+00:00",
    )
    item = TrainingSessionItem(
        id="s1-1",
        session_id="s1",
        exercise_id="barbell_bench_press",
        order_index=1,
        planned_sets=tuple(
            PlannedSet(index=i, target_reps=5, suggested_weight_kg=80, rest_seconds=180) for i in (1, 2, 3)
        ),
        name="Barbell Bench Press",
    )
    return session, item


class TestProfile:
    def test_round_trip_keeps_user_id(self, tmp_path):
        store = LocalStore(tmp_path)
        store.save_profile(TrainingProfile(goals={"lose_fat": 1}, equipment=["dumbbells"]))
        user_id = store.user_id()

        store.save_profile(TrainingProfile(goals={"build_muscle": 1}))

        assert store.user_id() == user_id
        assert store.load_profile().goals == {"build_muscle": 1}

    def test_missing_profile(self, tmp_path):
        store = LocalStore(tmp_path)
        assert not store.exists()
        assert store.load_profile() is None
        with pytest.raises(FileNotFoundError):
            store.user_id()

    def test_corrupt_profile(self, tmp_path):
        (tmp_path / "profile.json").write_text("{oops")
        with pytest.raises(ValidationError, match="invalid JSON"):
            LocalStore(tmp_path).load_profile()

    def test_default_dir_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LIFT_SCHEDULER_HOME", str(tmp_path / "home"))
        assert default_data_dir() == tmp_path / "home"


class TestActiveSession:
    def test_save_and_load(self, tmp_path):
        store = LocalStore(tmp_path)
        session, item = _session_and_item()
        item.record(PerformedSet(index=1, weight_kg=80, reps=5, rpe=10))
        adjustment = advise_next_set(item.planned_sets, item.performed_sets, item.performed_sets[0], 2.5, 20)

        store.save_active_session(session, [item], {item.id: adjustment})
        loaded_session, items, adjustments = store.load_active_session()

        assert loaded_session.id == "s1"
        assert items[0].performed_sets[0].rpe == 10
        assert items[0].planned_sets == item.planned_sets
        assert adjustments[item.id] == adjustment

        store.clear_active_session()
        assert store.load_active_session() is None

    def test_restore_drops_stale_adjustment(self, tmp_path):
        session, item = _session_and_item()
        item.record(PerformedSet(index=1, weight_kg=80, reps=5, rpe=10))
        adjustment = advise_next_set(item.planned_sets, item.performed_sets, item.performed_sets[0], 2.5, 20)
        # Set 1 re-logged after the adjustment was saved
        item.record(PerformedSet(index=1, weight_kg=80, reps=5, rpe=7))

        manager = SessionManager(
            InMemoryRemoteStore(),
            queue=LocalStore(tmp_path).queue(),
            probe=StaticProbe(True),
            use_ticker=False,
        )
        manager.restore(session, [item], {item.id: adjustment})
        assert manager.adjustments == {}

    def test_missing_key(self, tmp_path):
        (tmp_path / "active_session.json").write_text(json.dumps({"session": {}}))
        with pytest.raises(ValidationError):
            LocalStore(tmp_path).load_active_session()


class TestValidation:
    @pytest.mark.parametrize("raw", ["2026-1-5", "05/01/2026", "2026-02-30"])
    def test_bad_dates(self, raw):
        with pytest.raises(ValidationError):
            validate_date(raw)

    def test_weekdays(self):
        assert validate_weekdays("fri,mon,3") == [1, 3, 5]
        assert validate_weekdays("Monday, Wednesday") == [1, 3]
        with pytest.raises(ValidationError):
            validate_weekdays("funday")
        with pytest.raises(ValidationError):
            validate_weekdays(" , ")

    def test_key_values(self):
        assert parse_key_values("back_squat=140, bench=100.5", "baseline") == {"back_squat": 140.0, "bench": 100.5}
        with pytest.raises(ValidationError):
            parse_key_values("back_squat", "baseline")
        with pytest.raises(ValidationError):
            parse_key_values("back_squat=heavy", "baseline")

    def test_profile_record_errors(self):
        with pytest.raises(ValidationError):
            dict_to_training_profile({"frequency": "thrice"})

    def test_operation_record_errors(self):
        with pytest.raises(ValidationError):
            dict_to_operation({"id": "x", "type": "drop_table", "target_id": "t", "payload": {}})
