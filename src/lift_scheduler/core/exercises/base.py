"""
ExerciseDefinition: the catalog entry that drives selection and prescription.

Each exercise declares which movement intents it can fill (the first one is
its primary intent), what equipment it needs, how it is loaded, and how well
it serves each training goal.
"""

from dataclasses import dataclass

from ..config import GOAL_ORDER, MINIMUM_LOAD_KG, REST_SECONDS_BY_CATEGORY

LOAD_CLASSES = tuple(MINIMUM_LOAD_KG)
CATEGORIES = tuple(REST_SECONDS_BY_CATEGORY)


@dataclass(frozen=True)
class ExerciseDefinition:
    """
    Complete definition of one catalog exercise.

    Attributes:
        exercise_id: Stable identifier, e.g. "barbell_bench_press"
        display_name: Human-readable name
        intents: Movement intents this exercise fills; intents[0] is primary
        equipment: Equipment ids that must all be available
        load_class: barbell | dumbbell | kettlebell | machine | cable | bodyweight
        category: compound_heavy | compound | isolation | conditioning
        goal_affinity: (goal, 0..1) pairs; missing goals score 0
        contraindications: Injury tags that rule this exercise out
        movement_patterns: Extra pattern tags matched against forbidden movements
        default_weight_kg: Working weight used when no baseline e1RM is known
    """

    exercise_id: str
    display_name: str
    intents: tuple[str, ...]
    equipment: tuple[str, ...]
    load_class: str
    category: str
    goal_affinity: tuple[tuple[str, float], ...]
    contraindications: tuple[str, ...] = ()
    movement_patterns: tuple[str, ...] = ()
    default_weight_kg: float = 0.0

    def __post_init__(self) -> None:
        if not self.intents:
            raise ValueError(f"{self.exercise_id}: at least one intent is required")
        if self.load_class not in LOAD_CLASSES:
            raise ValueError(f"{self.exercise_id}: unknown load_class {self.load_class!r}")
        if self.category not in CATEGORIES:
            raise ValueError(f"{self.exercise_id}: unknown category {self.category!r}")
        for goal, value in self.goal_affinity:
            if goal not in GOAL_ORDER:
                raise ValueError(f"{self.exercise_id}: unknown goal {goal!r}")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{self.exercise_id}: affinity for {goal} must be in [0, 1]")
        if self.default_weight_kg < 0:
            raise ValueError(f"{self.exercise_id}: default_weight_kg must be non-negative")

    @property
    def primary_intent(self) -> str:
        return self.intents[0]

    def affinity(self, goal: str) -> float:
        for g, value in self.goal_affinity:
            if g == goal:
                return value
        return 0.0

    def patterns(self) -> frozenset[str]:
        """All tags a forbidden-movement constraint can match."""
        return frozenset(self.intents) | frozenset(self.movement_patterns)
