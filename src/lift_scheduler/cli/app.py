"""Shared Typer app object, global options, and store utilities."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Optional, TypeVar

import typer
from rich.logging import RichHandler

from ..core.program_days import ProgramDayCache
from ..core.session_runtime import SessionManager
from ..io.connectivity import StaticProbe, TcpProbe
from ..io.local_store import LocalStore
from ..io.serializers import ValidationError
from . import views

T = TypeVar("T")

# Shared --date option type used by preview and start
DateOption = Annotated[
    Optional[str],
    typer.Option("--date", "-d", help="Training date (YYYY-MM-DD, default: today)"),
]

# Shared --template option type for sessions not linked to a program
TemplateOption = Annotated[
    Optional[str],
    typer.Option("--template", "-t", help="Ad hoc day template (e.g. push, full_body_a)"),
]

app = typer.Typer(
    name="lift-scheduler",
    help="Periodized 4-week strength programs with explainable sessions and offline-safe logging.",
    no_args_is_help=True,
    invoke_without_command=True,
)


@dataclass
class CliState:
    """Options given before the command name."""

    store: LocalStore
    offline: bool = False
    check_host: tuple[str, int] | None = None

    def probe(self) -> StaticProbe | TcpProbe:
        if self.offline:
            return StaticProbe(False)
        if self.check_host is not None:
            return TcpProbe(*self.check_host)
        # The file-backed remote itself is always reachable
        return StaticProbe(True)

    def manager(self, remote=None) -> SessionManager:
        return SessionManager(
            remote=remote if remote is not None else self.store.remote(),
            queue=self.store.queue(),
            probe=self.probe(),
            event_log=self.store.event_log(),
            use_ticker=False,
        )


def parse_host_port(value: str, default_port: int = 53) -> tuple[str, int]:
    """Split HOST[:PORT]; raises typer.BadParameter on a bad port."""
    host, sep, port = value.rpartition(":")
    if not sep:
        return value, default_port
    if not host or not port.isdigit() or not 0 < int(port) < 65536:
        raise typer.BadParameter(f"expected HOST[:PORT], got '{value}'")
    return host, int(port)


def configure_logging(verbose: bool) -> None:
    """Route library logging through Rich; DEBUG with --verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=views.console, show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    data_dir: Annotated[
        Optional[Path],
        typer.Option("--data-dir", help="Data directory (default: $LIFT_SCHEDULER_HOME or ~/.lift-scheduler)"),
    ] = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Treat the network as unavailable; writes go to the offline queue"),
    ] = False,
    check_host: Annotated[
        Optional[str],
        typer.Option(
            "--check-host",
            help="Treat the network as available only while HOST[:PORT] accepts TCP connections",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging"),
    ] = False,
) -> None:
    """
    Plan, preview and log strength training sessions.
    """
    configure_logging(verbose)
    ctx.obj = CliState(
        store=LocalStore(data_dir),
        offline=offline,
        check_host=parse_host_port(check_host) if check_host else None,
    )


def get_state(ctx: typer.Context) -> CliState:
    """CliState set by the callback (or a default one when invoked directly)."""
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState(store=LocalStore())
    return ctx.obj


def require_profile(state: CliState):
    """Load the profile or exit with a hint to run init."""
    try:
        profile = state.store.load_profile()
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if profile is None:
        views.print_error(f"No profile found in {state.store.data_dir}")
        views.print_info("Run 'init' first to create a profile.")
        raise typer.Exit(1)
    return profile


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from a synchronous command."""
    return asyncio.run(coro)


async def load_program_day(remote, user_id: str, date: str):
    """Active program and its day on *date* (either may be None)."""
    program = await remote.get_active_program(user_id)
    if program is None:
        return None, None
    day = await ProgramDayCache(remote).day_for_date(program, date)
    return program, day
