"""
Exercise catalog.

Read-only lookup over the YAML-defined exercises.  Use get_catalog() for
the process-wide default catalog, or build an ExerciseCatalog directly from
a list of definitions (tests, alternative data sets).

The catalog order is significant: session planning breaks score ties by it.
"""

from functools import lru_cache

from ..errors import UnknownExerciseError
from .base import ExerciseDefinition


class ExerciseCatalog:
    """Ordered, read-only collection of ExerciseDefinition."""

    def __init__(self, exercises: list[ExerciseDefinition]):
        if not exercises:
            raise RuntimeError(
                "lift-scheduler: no exercise definitions could be loaded. "
                "Check that src/lift_scheduler/exercises/*.yaml files are present and valid."
            )
        self._ordered: tuple[ExerciseDefinition, ...] = tuple(exercises)
        self._by_id: dict[str, ExerciseDefinition] = {}
        for ex in self._ordered:
            if ex.exercise_id in self._by_id:
                raise ValueError(f"Duplicate exercise_id in catalog: {ex.exercise_id}")
            self._by_id[ex.exercise_id] = ex

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, exercise_id: object) -> bool:
        return exercise_id in self._by_id

    def get_exercise_by_id(self, exercise_id: str) -> ExerciseDefinition:
        """
        Return the ExerciseDefinition for the given exercise_id.

        Raises:
            UnknownExerciseError: If exercise_id is not in the catalog
        """
        try:
            return self._by_id[exercise_id]
        except KeyError:
            raise UnknownExerciseError(exercise_id) from None

    def list_exercises(self) -> tuple[ExerciseDefinition, ...]:
        """All exercises in catalog order."""
        return self._ordered

    def position(self, exercise_id: str) -> int:
        """Catalog index of an exercise (the stable tie-break key)."""
        return self._ordered.index(self.get_exercise_by_id(exercise_id))


@lru_cache(maxsize=1)
def get_catalog() -> ExerciseCatalog:
    """Return the default catalog (bundled YAML plus user overrides), loaded once."""
    from .loader import load_exercises_from_yaml

    return ExerciseCatalog(load_exercises_from_yaml())


def get_exercise(exercise_id: str) -> ExerciseDefinition:
    """Shortcut for get_catalog().get_exercise_by_id()."""
    return get_catalog().get_exercise_by_id(exercise_id)
