"""
Session plan synthesis.

build_session_from_program_day() turns one ProgramDay plus the program's
frozen profile snapshot into a SessionPlan: for every intent slot it
filters and scores the catalog, picks the winner, prescribes its sets and
records a DecisionTrace.  The trace is accumulated while scoring (see
_TraceBuilder) so the explanation always matches the selection.

Everything here is pure: no I/O beyond reading the catalog and rule
tables, no clock, no randomness.  Calling it twice with the same inputs
yields equal plans, which makes it safe for previews.
"""

import math
from dataclasses import dataclass, field

from .config import (
    COMPOUND_CATEGORIES,
    CONFIDENCE_BASE,
    CONFIDENCE_GAP_SCALE,
    COOLDOWN_MINUTES,
    MAX_RANKED_ALTERNATIVES,
    PRIMARY_INTENT_ALIGNMENT,
    SECONDARY_INTENT_ALIGNMENT,
    SET_WORK_SECONDS,
    WARMUP_MINUTES,
)
from .engine.config_loader import RuleTables, rule_tables
from .exercises.base import ExerciseDefinition
from .exercises.registry import ExerciseCatalog, get_catalog
from .models import (
    DecisionTrace,
    ExercisePerformance,
    PlannedExercise,
    PlannedSet,
    ProfileSnapshot,
    ProgramDay,
    RankedAlternative,
    SessionPlan,
)
from .program_planner import DAY_TEMPLATES, default_snapshot, week_intensity, week_volume
from .progression import (
    best_set,
    estimate_1rm,
    evaluate_progression,
    load_for_reps,
    minimum_weight,
    next_reps,
    next_weight,
    round_to_step,
    weight_step,
)


@dataclass
class _TraceBuilder:
    """
    Accumulates the explanation for one slot while candidates are filtered
    and scored.  Consumed by build() once the winner is known.
    """

    intent: str
    goal_bias: tuple[tuple[str, float], ...]
    constraints: list[str] = field(default_factory=list)
    ranked: list[tuple[float, int, ExerciseDefinition]] = field(default_factory=list)

    def exclude(self, reason: str) -> None:
        self.constraints.append(reason)

    def add_candidate(self, score: float, position: int, exercise: ExerciseDefinition) -> None:
        self.ranked.append((score, position, exercise))

    def rank(self) -> list[tuple[float, int, ExerciseDefinition]]:
        # Catalog position is the stable tie-break
        self.ranked.sort(key=lambda c: (-c[0], c[1]))
        return self.ranked

    def build(self, prescription_note: str) -> DecisionTrace:
        winner_score, _, winner = self.ranked[0]
        runner_up = self.ranked[1] if len(self.ranked) > 1 else None
        alternatives = tuple(
            RankedAlternative(exercise_id=ex.exercise_id, name=ex.display_name, score=round(score, 4))
            for score, _, ex in self.ranked[1 : MAX_RANKED_ALTERNATIVES + 1]
        )

        reason = (
            f"{winner.display_name} scored {winner_score:.2f} for {self.intent}, "
            f"best of {len(self.ranked)} eligible"
        )
        if runner_up is not None:
            reason += f" (ahead of {runner_up[2].display_name} at {runner_up[0]:.2f})"
        top_goal = _best_goal_fit(winner, self.goal_bias)
        if top_goal:
            reason += f"; strongest fit for {top_goal}"

        return DecisionTrace(
            intent=self.intent,
            selection_reason=reason,
            goal_bias=self.goal_bias,
            constraints_applied=tuple(self.constraints),
            ranked_alternatives=alternatives,
            confidence=selection_confidence(winner_score, runner_up[0] if runner_up else None),
            score=round(winner_score, 4),
            prescription_note=prescription_note,
        )


def _best_goal_fit(exercise: ExerciseDefinition, goal_bias: tuple[tuple[str, float], ...]) -> str | None:
    contributions = [(w * exercise.affinity(g), g) for g, w in goal_bias]
    if not contributions:
        return None
    best = max(contributions, key=lambda c: c[0])
    return best[1] if best[0] > 0 else None


# =============================================================================
# SCORING
# =============================================================================


def exclusion_reason(exercise: ExerciseDefinition, snapshot: ProfileSnapshot) -> str | None:
    """
    Apply the hard filters; return why the exercise is excluded, or None.

    Filters: all required equipment available, no forbidden movement
    pattern, no contraindication matching an active injury.
    """
    missing = [e for e in exercise.equipment if e not in snapshot.equipment]
    if missing:
        return f"{exercise.exercise_id}: requires {', '.join(missing)}"

    forbidden = sorted(exercise.patterns() & set(snapshot.forbidden_movements))
    if forbidden:
        return f"{exercise.exercise_id}: forbidden movement {', '.join(forbidden)}"

    conflicts = sorted(set(exercise.contraindications) & set(snapshot.injuries))
    if conflicts:
        return f"{exercise.exercise_id}: conflicts with injury {', '.join(conflicts)}"

    return None


def score_exercise(exercise: ExerciseDefinition, intent: str, goals: dict[str, float]) -> float:
    """
    Goal-weighted fit of an exercise for an intent slot.

    score = alignment × Σ_g w_g × affinity_g, alignment being 1.0 when the
    slot intent is the exercise's primary intent and 0.8 otherwise.
    """
    if intent not in exercise.intents:
        return 0.0
    alignment = PRIMARY_INTENT_ALIGNMENT if exercise.primary_intent == intent else SECONDARY_INTENT_ALIGNMENT
    return alignment * sum(weight * exercise.affinity(goal) for goal, weight in goals.items())


def selection_confidence(best: float, runner_up: float | None) -> float:
    """
    Confidence in [0, 1] from the winner's relative lead over the runner-up.

    A sole candidate is a certain pick; a tie sits at CONFIDENCE_BASE.
    """
    if runner_up is None:
        return 1.0
    if best <= 0:
        return CONFIDENCE_BASE
    gap = (best - runner_up) / best
    return round(min(1.0, max(0.0, CONFIDENCE_BASE + gap * CONFIDENCE_GAP_SCALE)), 4)


# =============================================================================
# PRESCRIPTION
# =============================================================================


def blended_rep_range(goals: dict[str, float], priority: str, rules: RuleTables) -> tuple[int, int]:
    """Goal-weighted rep range for a priority tier."""
    low = high = 0.0
    for goal, weight in goals.items():
        params = rules.goal_rules[goal]
        if priority == "primary":
            low += weight * params.primary_reps_low
            high += weight * params.primary_reps_high
        else:
            low += weight * params.accessory_reps_low
            high += weight * params.accessory_reps_high
    return int(low + 0.5), int(high + 0.5)


def blended_set_count(goals: dict[str, float], priority: str, rules: RuleTables) -> float:
    total = 0.0
    for goal, weight in goals.items():
        params = rules.goal_rules[goal]
        total += weight * (params.primary_sets if priority == "primary" else params.accessory_sets)
    return total


def prescribe_sets(
    exercise: ExerciseDefinition,
    priority: str,
    snapshot: ProfileSnapshot,
    week_index: int,
    rules: RuleTables,
    last: ExercisePerformance | None = None,
) -> tuple[tuple[PlannedSet, ...], str]:
    """
    Prescribe sets for a selected exercise.

    With a previous performance (*last*) the lifter's own history drives the
    load: its best set gives the current e1RM, double progression decides
    the next rep target, and the weight is the load matching that e1RM at
    the new target, never above the progression ceiling.  Without history,
    suggested weight = baseline e1RM × intensity(week, goal mix), rounded to
    the exercise's weight step and clamped to the equipment minimum; with no
    baseline either the catalog default working weight is used.

    Returns:
        (planned sets, human-readable note on how the weight was derived)
    """
    goals = snapshot.goal_weights()
    low, high = blended_rep_range(goals, priority, rules)
    target_reps = max(1, int((low + high) / 2 + 0.5))
    n_sets = max(1, int(blended_set_count(goals, priority, rules) * week_volume(week_index, rules) + 0.5))
    rest = rules.rest_by_category[exercise.category]
    step = weight_step(exercise)

    top = best_set(last.sets) if last is not None else None
    if top is not None:
        decision = evaluate_progression(list(last.sets), (low, high))
        target_reps = max(1, next_reps(top.reps, (low, high), decision, loaded=top.weight_kg > 0))
        if decision == "reduce_sets":
            n_sets = max(1, n_sets - 1)
        if top.weight_kg > 0:
            e1rm = estimate_1rm(top.weight_kg, top.reps)
            ceiling = next_weight(top.weight_kg, decision, exercise)
            weight = max(minimum_weight(exercise), min(round_to_step(load_for_reps(e1rm, target_reps), step), ceiling))
            note = (
                f"{e1rm:.1f} kg e1RM from {top.weight_kg:g} kg x {top.reps} on {last.date}; "
                f"{decision}, capped at {ceiling:g} kg"
            )
        else:
            weight = 0.0
            note = f"{top.reps} bodyweight reps on {last.date}; {decision}"
        note += f"; {target_reps} reps in {low}-{high} range"
    else:
        baseline = snapshot.baseline_for(exercise.exercise_id)
        if baseline is not None:
            intensity = week_intensity(week_index, goals, rules)
            raw = baseline * intensity
            note = f"{baseline:.1f} kg e1RM x {intensity:.1%} (week {week_index})"
        else:
            raw = exercise.default_weight_kg
            note = "no baseline e1RM; catalog default working weight"
        weight = max(minimum_weight(exercise), round_to_step(raw, step)) if raw > 0 else 0.0
        note += f"; {target_reps} reps from {low}-{high} range"

    sets = tuple(
        PlannedSet(index=i, target_reps=target_reps, suggested_weight_kg=weight, rest_seconds=rest)
        for i in range(1, n_sets + 1)
    )
    return sets, note


def estimate_duration_minutes(exercises: tuple[PlannedExercise, ...] | list[PlannedExercise]) -> int:
    """Warm-up + work + rest + cool-down, in whole minutes."""
    seconds = sum(SET_WORK_SECONDS + s.rest_seconds for ex in exercises for s in ex.sets)
    return WARMUP_MINUTES + COOLDOWN_MINUTES + math.ceil(seconds / 60)


# =============================================================================
# PUBLIC API
# =============================================================================


def _synthesize(
    label: str,
    template_key: str,
    intents: tuple[str, ...],
    week_index: int,
    snapshot: ProfileSnapshot,
    catalog: ExerciseCatalog,
    rules: RuleTables,
    program_day_id: str | None = None,
    date: str | None = None,
    history: dict[str, ExercisePerformance] | None = None,
) -> SessionPlan:
    history = history or {}
    goals = snapshot.goal_weights()
    goal_bias = tuple((g, w) for g, w in snapshot.goals if w > 0)

    selected: set[str] = set()
    exercises: list[PlannedExercise] = []
    unfilled: list[str] = []
    primary_taken = False

    for intent in intents:
        builder = _TraceBuilder(intent=intent, goal_bias=goal_bias)
        for position, exercise in enumerate(catalog.list_exercises()):
            if intent not in exercise.intents or exercise.exercise_id in selected:
                continue
            reason = exclusion_reason(exercise, snapshot)
            if reason is not None:
                builder.exclude(reason)
                continue
            builder.add_candidate(score_exercise(exercise, intent, goals), position, exercise)

        if not builder.ranked:
            unfilled.append(f"{intent}: no exercise fits the available equipment and constraints")
            continue

        winner = builder.rank()[0][2]
        is_primary = winner.category == "compound_heavy" or (
            winner.category in COMPOUND_CATEGORIES and not primary_taken
        )
        priority = "primary" if is_primary else "accessory"
        primary_taken = primary_taken or is_primary

        sets, note = prescribe_sets(
            winner, priority, snapshot, week_index, rules, history.get(winner.exercise_id)
        )
        exercises.append(
            PlannedExercise(
                exercise_id=winner.exercise_id,
                name=winner.display_name,
                priority=priority,
                intents=winner.intents,
                sets=sets,
                trace=builder.build(note),
            )
        )
        selected.add(winner.exercise_id)

    return SessionPlan(
        label=label,
        template_key=template_key,
        week_index=week_index,
        exercises=tuple(exercises),
        estimated_minutes=estimate_duration_minutes(exercises),
        program_day_id=program_day_id,
        date=date,
        unfilled_slots=tuple(unfilled),
    )


def build_session_from_program_day(
    day: ProgramDay,
    snapshot: ProfileSnapshot,
    catalog: ExerciseCatalog | None = None,
    rules: RuleTables | None = None,
    history: dict[str, ExercisePerformance] | None = None,
) -> SessionPlan:
    """
    Build the SessionPlan for a scheduled program day.

    Args:
        day: Program day (label, intents, template key, week index)
        snapshot: The program's frozen profile snapshot
        catalog: Exercise catalog; the default bundled catalog when None
        rules: Rule tables; loaded from YAML when None
        history: Last performance per exercise id (see last_performances());
            exercises found here progress from it instead of the baseline

    Returns:
        SessionPlan (not persisted)
    """
    return _synthesize(
        label=day.label,
        template_key=day.template_key,
        intents=day.intents,
        week_index=day.week_index,
        snapshot=snapshot,
        catalog=catalog if catalog is not None else get_catalog(),
        rules=rules if rules is not None else rule_tables(),
        program_day_id=day.id,
        date=day.date,
        history=history,
    )


def build_adhoc_session(
    template_key: str,
    catalog: ExerciseCatalog | None = None,
    snapshot: ProfileSnapshot | None = None,
    rules: RuleTables | None = None,
    history: dict[str, ExercisePerformance] | None = None,
) -> SessionPlan:
    """
    Build a plan for a session not linked to a program.

    Without a snapshot the default one is used (equal goals, no equipment,
    no constraints), so only bodyweight exercises qualify.  Prescribed at
    week-1 intensity unless *history* holds a previous performance.

    Raises:
        ValueError: If template_key is unknown
    """
    if template_key not in DAY_TEMPLATES:
        raise ValueError(f"Unknown template '{template_key}'. Valid: {', '.join(DAY_TEMPLATES)}")
    label, intents = DAY_TEMPLATES[template_key]
    return _synthesize(
        label=label,
        template_key=template_key,
        intents=intents,
        week_index=1,
        snapshot=snapshot if snapshot is not None else default_snapshot(),
        catalog=catalog if catalog is not None else get_catalog(),
        rules=rules if rules is not None else rule_tables(),
        history=history,
    )


def explain_session_plan(plan: SessionPlan) -> str:
    """
    Step-by-step explanation of a SessionPlan as Rich markup.

    Reads only the recorded DecisionTraces, never re-scores.
    """
    lines = [f"[bold]{plan.label}[/bold] (week {plan.week_index}, ~{plan.estimated_minutes} min)"]
    if plan.exercises:
        bias = ", ".join(f"{g} {w:.0%}" for g, w in plan.exercises[0].trace.goal_bias)
        lines.append(f"Goal bias: {bias}")
    lines.append("")

    for n, ex in enumerate(plan.exercises, 1):
        t = ex.trace
        first = ex.sets[0]
        lines.append(f"[bold cyan]{n}. {ex.name}[/bold cyan] ({ex.priority}) slot={t.intent}")
        lines.append(f"   {t.selection_reason}")
        lines.append(f"   confidence {t.confidence:.2f}")
        lines.append(
            f"   {len(ex.sets)} x {first.target_reps} @ {first.suggested_weight_kg:g} kg, "
            f"rest {first.rest_seconds}s ({t.prescription_note})"
        )
        if t.ranked_alternatives:
            alts = ", ".join(f"{a.name} {a.score:.2f}" for a in t.ranked_alternatives)
            lines.append(f"   [dim]alternatives: {alts}[/dim]")
        if t.constraints_applied:
            lines.append(f"   [dim]excluded: {'; '.join(t.constraints_applied)}[/dim]")

    for slot in plan.unfilled_slots:
        lines.append(f"[yellow]Unfilled slot[/yellow] {slot}")
    return "\n".join(lines)
