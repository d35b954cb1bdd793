"""History commands: history, progress, records, adherence."""

import json
from dataclasses import asdict
from datetime import datetime
from typing import Annotated

import typer

from ...core.analytics import adherence, all_time_bests, best_set_trend, e1rm_trend, trend_direction, volume_trend
from ...core.config import HISTORY_DEFAULT_LIMIT
from ...core.errors import RemoteError
from ...core.exercises.registry import get_catalog
from ...core.history import load_session_history
from ...core.program_days import ProgramDayCache
from ...io.serializers import session_item_to_dict, training_session_to_dict
from .. import views
from ..app import CliState, app, get_state, require_profile, run

JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output as JSON for machine processing"),
]


def _history(state: CliState, limit: int | None = None):
    try:
        return run(load_session_history(state.store.remote(), state.store.user_id(), limit))
    except RemoteError as e:
        views.print_error(f"Training history unavailable: {e}")
        raise typer.Exit(1)


@app.command()
def history(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Number of most recent sessions to show"),
    ] = HISTORY_DEFAULT_LIMIT,
    json_out: JsonOption = False,
) -> None:
    """
    Show finished training sessions.
    """
    state = get_state(ctx)
    require_profile(state)
    entries = _history(state, limit)

    if json_out:
        print(json.dumps([
            {
                "session": training_session_to_dict(e.session),
                "items": [session_item_to_dict(i) for i in e.items],
            }
            for e in entries
        ], indent=2))
        return

    if not entries:
        views.print_info("No finished sessions yet.")
        return
    views.print_history(entries)


@app.command()
def progress(
    ctx: typer.Context,
    exercise_id: Annotated[str, typer.Argument(help="Exercise id (e.g. bench_press)")],
    json_out: JsonOption = False,
) -> None:
    """
    Show an exercise's e1RM, best-set and volume trend.
    """
    state = get_state(ctx)
    require_profile(state)
    if exercise_id not in get_catalog():
        views.print_error(f"Unknown exercise '{exercise_id}'")
        raise typer.Exit(1)

    entries = _history(state)
    e1rm = e1rm_trend(entries, exercise_id)
    best = best_set_trend(entries, exercise_id)
    volume = volume_trend(entries, exercise_id)
    direction = trend_direction(e1rm)

    if json_out:
        print(json.dumps({
            "exercise_id": exercise_id,
            "direction": direction,
            "e1rm": [asdict(p) for p in e1rm],
            "best_set": [asdict(p) for p in best],
            "volume": [asdict(p) for p in volume],
        }, indent=2))
        return

    if not volume:
        views.print_info(f"No logged sets for {exercise_id} yet.")
        return
    views.print_progress(exercise_id, e1rm, best, volume, direction)


@app.command()
def records(ctx: typer.Context, json_out: JsonOption = False) -> None:
    """
    Show all-time bests per exercise.
    """
    state = get_state(ctx)
    require_profile(state)
    bests = all_time_bests(_history(state))

    if json_out:
        print(json.dumps({ex: asdict(b) for ex, b in bests.items()}, indent=2))
        return

    if not bests:
        views.print_info("No logged sets yet.")
        return
    views.print_records(bests)


@app.command("adherence")
def adherence_cmd(ctx: typer.Context, json_out: JsonOption = False) -> None:
    """
    Show how many of the active program's days were trained.
    """
    state = get_state(ctx)
    require_profile(state)
    remote = state.store.remote()

    async def _load():
        program = await remote.get_active_program(state.store.user_id())
        if program is None:
            return []
        return await ProgramDayCache(remote).get_days(program)

    try:
        days = run(_load())
    except RemoteError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if not days:
        views.print_error("No active program. Run 'create-program' first.")
        raise typer.Exit(1)

    stats = adherence(days, _history(state), datetime.now().strftime("%Y-%m-%d"))
    if json_out:
        print(json.dumps(asdict(stats), indent=2))
        return
    views.print_adherence(stats)
