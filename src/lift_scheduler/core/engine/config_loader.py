"""
YAML → typed rule tables.

Loads prescription rules from rules.yaml (bundled with the package) and
optionally merges user overrides from ~/.lift-scheduler/rules.yaml.

Usage:
    from lift_scheduler.core.engine.config_loader import rule_tables
    rules = rule_tables()
    rest = rules.rest_by_category["compound"]

If the bundled YAML cannot be parsed, the Python defaults from config.py
are used (no crash).  If the user override file has parse errors, a
warning is emitted and the file is ignored.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..config import (
    DATA_DIR_ENV,
    DATA_DIR_NAME,
    GOAL_RULES,
    INTENSITY_CURVE,
    REST_SECONDS_BY_CATEGORY,
    VOLUME_STEP,
    GoalRuleParams,
)

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML mapping; warn and return {} if it cannot be parsed."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        warnings.warn(f"lift-scheduler: ignoring {path} ({exc})", stacklevel=3)
        return {}
    return data if isinstance(data, dict) else {}


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (non-destructive to base)."""
    result = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = deep_merge(result[k], v)
        else:
            result[k] = v
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_user_config_dir() -> Path:
    """Return the data/config directory ($LIFT_SCHEDULER_HOME or ~/.lift-scheduler)."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    home = Path(os.environ.get("HOME", "~")).expanduser()
    return home / DATA_DIR_NAME


def get_bundled_yaml_path() -> Path:
    """Return the path to the bundled rules.yaml."""
    # config_loader.py lives at src/lift_scheduler/core/engine/
    return Path(__file__).parent.parent.parent / "rules.yaml"


def get_user_yaml_path() -> Path | None:
    """Return the user rules.yaml if it exists, else None."""
    p = get_user_config_dir() / "rules.yaml"
    return p if p.exists() else None


def load_model_config() -> dict[str, Any]:
    """
    Load and merge rule configuration from YAML sources.

    Load order (later overrides earlier):
    1. Bundled src/lift_scheduler/rules.yaml
    2. User override at ~/.lift-scheduler/rules.yaml

    Returns:
        Merged dict of config sections.  Empty dict if no YAML available.
    """
    config: dict[str, Any] = {}

    bundled = get_bundled_yaml_path()
    if bundled.exists():
        config = deep_merge(config, _load_yaml_file(bundled))

    user = get_user_yaml_path()
    if user is not None:
        user_cfg = _load_yaml_file(user)
        if user_cfg:
            config = deep_merge(config, user_cfg)

    return config


@dataclass(frozen=True)
class RuleTables:
    """Effective prescription tables after YAML overrides."""

    goal_rules: dict[str, GoalRuleParams]
    rest_by_category: dict[str, int]
    intensity_curve: dict[str, tuple[float, float]]
    volume_step: float


def _goal_rules_from(section: dict) -> dict[str, GoalRuleParams]:
    rules = dict(GOAL_RULES)
    for goal, values in section.items():
        if goal not in rules or not isinstance(values, dict):
            continue
        current = rules[goal]
        rules[goal] = GoalRuleParams(
            primary_reps_low=int(values.get("primary_reps_low", current.primary_reps_low)),
            primary_reps_high=int(values.get("primary_reps_high", current.primary_reps_high)),
            accessory_reps_low=int(values.get("accessory_reps_low", current.accessory_reps_low)),
            accessory_reps_high=int(values.get("accessory_reps_high", current.accessory_reps_high)),
            primary_sets=int(values.get("primary_sets", current.primary_sets)),
            accessory_sets=int(values.get("accessory_sets", current.accessory_sets)),
        )
    return rules


def rule_tables(config: dict[str, Any] | None = None) -> RuleTables:
    """
    Build RuleTables from a merged config dict (loaded if not given).

    Keys absent from YAML keep their config.py defaults.  Weekly increments
    are clamped at 0 so the overload curve can never go down.
    """
    if config is None:
        config = load_model_config()

    rest = dict(REST_SECONDS_BY_CATEGORY)
    for category, seconds in (config.get("rest_seconds") or {}).items():
        if category in rest:
            rest[category] = int(seconds)

    curve = dict(INTENSITY_CURVE)
    for goal, values in (config.get("intensity_curve") or {}).items():
        if goal in curve and isinstance(values, dict):
            base, step = curve[goal]
            curve[goal] = (
                float(values.get("base", base)),
                max(0.0, float(values.get("weekly_step", step))),
            )

    return RuleTables(
        goal_rules=_goal_rules_from(config.get("goal_rules") or {}),
        rest_by_category=rest,
        intensity_curve=curve,
        volume_step=max(0.0, float(config.get("volume_step", VOLUME_STEP))),
    )
