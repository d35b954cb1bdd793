"""
Exercise catalog for lift-scheduler.

Each exercise is described by an ExerciseDefinition loaded from YAML and
served through a read-only ExerciseCatalog.
"""

from .base import ExerciseDefinition
from .registry import ExerciseCatalog, get_catalog, get_exercise

__all__ = [
    "ExerciseDefinition",
    "ExerciseCatalog",
    "get_catalog",
    "get_exercise",
]
