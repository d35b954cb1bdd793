"""
YAML → ExerciseDefinition loader.

Loads the exercise catalog from YAML files in the bundled
``src/lift_scheduler/exercises/`` directory.  Each file (e.g. push.yaml)
holds an ``exercises:`` list; files are read in name order and entries keep
their order inside a file, which fixes the catalog order used for
deterministic tie-breaking.

User overrides: place YAML files in ``~/.lift-scheduler/exercises/``.
An entry whose exercise_id matches a bundled exercise is deep-merged over
it, so only changed keys need to be listed.  Unknown ids are appended as
new exercises after the bundled ones.
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path

import yaml

from ..engine.config_loader import deep_merge, get_user_config_dir
from .base import ExerciseDefinition

logger = logging.getLogger(__name__)

_REQUIRED_EXERCISE_FIELDS: frozenset[str] = frozenset(
    {
        "exercise_id",
        "display_name",
        "intents",
        "equipment",
        "load_class",
        "category",
        "goal_affinity",
    }
)


def exercise_from_dict(d: dict) -> ExerciseDefinition:
    """Convert a raw dict (from YAML) to an ExerciseDefinition.

    Raises ValueError if any required field is absent or invalid.
    """
    missing = _REQUIRED_EXERCISE_FIELDS - set(d)
    if missing:
        raise ValueError(f"ExerciseDefinition missing fields: {sorted(missing)}")

    affinity = d["goal_affinity"] or {}
    return ExerciseDefinition(
        exercise_id=str(d["exercise_id"]),
        display_name=str(d["display_name"]),
        intents=tuple(str(i) for i in d["intents"]),
        equipment=tuple(str(e) for e in d["equipment"] or ()),
        load_class=str(d["load_class"]),
        category=str(d["category"]),
        goal_affinity=tuple((str(g), float(v)) for g, v in affinity.items()),
        contraindications=tuple(str(c) for c in d.get("contraindications") or ()),
        movement_patterns=tuple(str(p) for p in d.get("movement_patterns") or ()),
        default_weight_kg=float(d.get("default_weight_kg", 0.0)),
    )


def _load_entries(path: Path) -> list[dict]:
    """Return the ``exercises:`` list of one YAML file ([] if absent)."""
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: top level must be a mapping")
    entries = data.get("exercises") or []
    if not isinstance(entries, list):
        raise ValueError(f"{path.name}: 'exercises' must be a list")
    return [e for e in entries if isinstance(e, dict)]


def get_bundled_exercises_dir() -> Path:
    """Return path to the bundled exercises/ data directory."""
    # loader.py lives at src/lift_scheduler/core/exercises/loader.py
    return Path(__file__).parent.parent.parent / "exercises"


def get_user_exercises_dir() -> Path | None:
    """Return ~/.lift-scheduler/exercises/ if it exists, else None."""
    p = get_user_config_dir() / "exercises"
    return p if p.is_dir() else None


def load_exercises_from_yaml(
    bundled_dir: Path | None = None,
    user_dir: Path | None = None,
) -> list[ExerciseDefinition]:
    """Return catalog exercises in catalog order.

    Bundled files are required; a bundled parse error propagates.  A broken
    user file or entry is skipped with a warning.

    Args:
        bundled_dir: Override for the bundled data directory (tests)
        user_dir: Override for the user directory; defaults to ~/.lift-scheduler/exercises

    Returns:
        List of ExerciseDefinition
    """
    if bundled_dir is None:
        bundled_dir = get_bundled_exercises_dir()
    if user_dir is None:
        user_dir = get_user_exercises_dir()

    raw: dict[str, dict] = {}
    for path in sorted(bundled_dir.glob("*.yaml")):
        for entry in _load_entries(path):
            raw[str(entry.get("exercise_id"))] = entry

    if user_dir is not None:
        for path in sorted(user_dir.glob("*.yaml")):
            try:
                entries = _load_entries(path)
            except (yaml.YAMLError, ValueError) as exc:
                warnings.warn(
                    f"lift-scheduler: ignoring user exercise file '{path.name}' ({exc})",
                    stacklevel=2,
                )
                continue
            for entry in entries:
                ex_id = str(entry.get("exercise_id"))
                raw[ex_id] = deep_merge(raw[ex_id], entry) if ex_id in raw else entry

    result: list[ExerciseDefinition] = []
    for ex_id, entry in raw.items():
        try:
            result.append(exercise_from_dict(entry))
        except (ValueError, TypeError) as exc:
            warnings.warn(
                f"lift-scheduler: skipping exercise '{ex_id}' ({exc})",
                stacklevel=2,
            )
    logger.debug("Loaded %d catalog exercises", len(result))
    return result
