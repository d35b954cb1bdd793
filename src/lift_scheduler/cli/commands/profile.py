"""Profile commands: init, show-profile."""

from typing import Annotated, Optional

import typer

from ...core.models import TrainingProfile
from ...io.serializers import ValidationError, parse_key_values, validate_weekdays
from .. import views
from ..app import app, get_state, require_profile


def _split(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


@app.command()
def init(
    ctx: typer.Context,
    goals: Annotated[
        Optional[str],
        typer.Option("--goals", "-g", help="Goal weights, e.g. build_strength=2,build_muscle=1"),
    ] = None,
    weekdays: Annotated[
        str,
        typer.Option("--weekdays", "-w", help="Training days: 1-7 or mon..sun, e.g. mon,wed,fri"),
    ] = "1,3,5",
    frequency: Annotated[
        str,
        typer.Option("--frequency", "-f", help="Muscle-group frequency: once | twice | auto"),
    ] = "auto",
    equipment: Annotated[
        Optional[str],
        typer.Option("--equipment", "-e", help="Available equipment, e.g. barbell,bench,rack,dumbbells"),
    ] = None,
    injuries: Annotated[
        Optional[str],
        typer.Option("--injuries", help="Active injury tags, e.g. shoulder,lower_back"),
    ] = None,
    forbidden: Annotated[
        Optional[str],
        typer.Option("--forbidden", help="Movement patterns to avoid, e.g. overhead,hip_hinge"),
    ] = None,
    baselines: Annotated[
        Optional[str],
        typer.Option("--baselines", "-b", help="Known e1RM per exercise, e.g. back_squat=140,bench_press=100"),
    ] = None,
    time_window: Annotated[
        str,
        typer.Option("--time-window", help="Preferred time: morning | afternoon | evening | any"),
    ] = "any",
    experience: Annotated[
        str,
        typer.Option("--experience", help="beginner | intermediate | advanced"),
    ] = "intermediate",
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing profile without asking"),
    ] = False,
) -> None:
    """
    Create or replace the training profile.

    Existing programs keep the profile snapshot they were created with;
    the new profile applies to the next create-program.
    """
    state = get_state(ctx)
    store = state.store

    if store.exists() and not force:
        if not views.confirm_action(f"A profile already exists in {store.data_dir}. Replace it?"):
            views.print_info("Cancelled.")
            raise typer.Exit(0)

    try:
        profile = TrainingProfile(
            goals=parse_key_values(goals, "goal") if goals else {},
            equipment=_split(equipment),
            injuries=_split(injuries),
            forbidden_movements=_split(forbidden),
            baselines=parse_key_values(baselines, "baseline") if baselines else {},
            weekdays=validate_weekdays(weekdays),
            frequency=frequency,
            time_window=time_window,
            experience=experience,
        )
    except (ValueError, ValidationError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    store.save_profile(profile)
    views.print_success(f"Profile saved to {store.profile_path}")
    views.print_profile(profile)


@app.command("show-profile")
def show_profile(ctx: typer.Context) -> None:
    """Show the current training profile."""
    views.print_profile(require_profile(get_state(ctx)))
