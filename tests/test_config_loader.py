"""
Tests for YAML-backed configuration: rule tables, user overrides and the
exercise catalog loader.
"""

import pytest

from lift_scheduler.core.config import GOAL_RULES, INTENSITY_CURVE, REST_SECONDS_BY_CATEGORY
from lift_scheduler.core.engine.config_loader import deep_merge, load_model_config, rule_tables
from lift_scheduler.core.exercises.loader import get_bundled_exercises_dir, load_exercises_from_yaml
from lift_scheduler.core.exercises.registry import ExerciseCatalog
from lift_scheduler.core.program_planner import DAY_TEMPLATES


@pytest.fixture
def user_home(tmp_path, monkeypatch):
    """Point the user config directory at an empty temp dir."""
    monkeypatch.setenv("LIFT_SCHEDULER_HOME", str(tmp_path))
    return tmp_path


class TestDeepMerge:
    def test_nested_override(self):
        base = {"a": {"x": 1, "y": 2}, "b": 3}
        merged = deep_merge(base, {"a": {"y": 20}, "c": 4})
        assert merged == {"a": {"x": 1, "y": 20}, "b": 3, "c": 4}
        assert base == {"a": {"x": 1, "y": 2}, "b": 3}

    def test_scalar_replaces_mapping(self):
        assert deep_merge({"a": {"x": 1}}, {"a": 5}) == {"a": 5}


class TestRuleTables:
    def test_defaults_without_yaml(self):
        rules = rule_tables({})
        assert rules.goal_rules == GOAL_RULES
        assert rules.rest_by_category == REST_SECONDS_BY_CATEGORY
        assert rules.intensity_curve == INTENSITY_CURVE
        assert rules.volume_step == 0.05

    def test_bundled_yaml_matches_defaults(self, user_home):
        rules = rule_tables()
        assert rules.goal_rules == GOAL_RULES
        assert rules.rest_by_category == REST_SECONDS_BY_CATEGORY

    def test_partial_override(self):
        rules = rule_tables(
            {
                "rest_seconds": {"compound": 90, "unknown_category": 10},
                "goal_rules": {"build_strength": {"primary_sets": 6}},
                "intensity_curve": {"lose_fat": {"base": 0.65}},
            }
        )
        assert rules.rest_by_category["compound"] == 90
        assert "unknown_category" not in rules.rest_by_category
        assert rules.goal_rules["build_strength"].primary_sets == 6
        assert rules.goal_rules["build_strength"].primary_reps_low == 3
        assert rules.intensity_curve["lose_fat"] == (0.65, 0.015)

    def test_curve_never_decreases(self):
        rules = rule_tables({"intensity_curve": {"build_strength": {"weekly_step": -0.1}}, "volume_step": -1})
        assert rules.intensity_curve["build_strength"][1] == 0.0
        assert rules.volume_step == 0.0

    def test_user_file_overrides_bundled(self, user_home):
        (user_home / "rules.yaml").write_text("rest_seconds:\n  isolation: 60\n")
        config = load_model_config()
        assert config["rest_seconds"]["isolation"] == 60
        assert config["rest_seconds"]["compound"] == 120

    def test_broken_user_file_warns_and_is_ignored(self, user_home):
        (user_home / "rules.yaml").write_text("rest_seconds: [unclosed\n")
        with pytest.warns(UserWarning, match="ignoring"):
            config = load_model_config()
        assert config["rest_seconds"]["isolation"] == 75


class TestExerciseCatalog:
    def test_bundled_catalog(self, user_home):
        catalog = ExerciseCatalog(load_exercises_from_yaml())
        assert "barbell_bench_press" in catalog
        assert "push_up" in catalog
        assert catalog.get_exercise_by_id("push_up").equipment == ()

    def test_every_template_intent_is_covered(self, user_home):
        exercises = load_exercises_from_yaml()
        covered = {i for ex in exercises for i in ex.intents}
        for key, (_, intents) in DAY_TEMPLATES.items():
            for intent in intents:
                assert intent in covered, f"{key}: {intent}"

    def test_user_override_and_addition(self, tmp_path):
        user_dir = tmp_path / "exercises"
        user_dir.mkdir()
        (user_dir / "mine.yaml").write_text(
            "exercises:\n"
            "  - exercise_id: push_up\n"
            "    default_weight_kg: 10\n"
            "  - exercise_id: ring_dip\n"
            "    display_name: Ring Dip\n"
            "    intents: [elbow_extension]\n"
            "    equipment: [rings]\n"
            "    load_class: bodyweight\n"
            "    category: compound\n"
            "    goal_affinity: {build_muscle: 0.8}\n"
        )
        exercises = load_exercises_from_yaml(get_bundled_exercises_dir(), user_dir)
        by_id = {ex.exercise_id: ex for ex in exercises}

        assert by_id["push_up"].default_weight_kg == 10
        assert by_id["push_up"].display_name == "Push-Up"
        assert exercises[-1].exercise_id == "ring_dip"
        # Overridden entries keep their catalog position
        ids = [ex.exercise_id for ex in exercises]
        assert ids.index("push_up") < ids.index("overhead_press")

    def test_invalid_user_entry_skipped(self, tmp_path):
        user_dir = tmp_path / "exercises"
        user_dir.mkdir()
        (user_dir / "bad.yaml").write_text(
            "exercises:\n"
            "  - exercise_id: mystery\n"
            "    display_name: Mystery\n"
        )
        with pytest.warns(UserWarning, match="mystery"):
            exercises = load_exercises_from_yaml(get_bundled_exercises_dir(), user_dir)
        assert "mystery" not in {ex.exercise_id for ex in exercises}

    def test_empty_catalog_rejected(self):
        with pytest.raises(RuntimeError):
            ExerciseCatalog([])
