"""Sync commands: sync, queue-status."""

import asyncio
from typing import Annotated, Optional

import typer

from ...core.config import CONNECTIVITY_PROBE_SECONDS
from ...io.serializers import ValidationError
from ...io.sync import ConnectivityMonitor, SyncResult, sync_offline_queue
from .. import views
from ..app import app, get_state, run


async def watch_and_sync(queue, remote, connectivity, event_log, timeout, interval) -> SyncResult | None:
    """
    Drain the queue as soon as the network comes back.

    Returns the drain's result, or None when *timeout* seconds passed with
    the network still down.
    """
    finished = asyncio.Event()
    outcome: list[SyncResult] = []

    async def drain() -> None:
        result = await sync_offline_queue(queue, remote, connectivity, event_log)
        outcome.append(result)
        if not result.offline:
            finished.set()

    monitor = ConnectivityMonitor(connectivity, drain, interval=interval)
    monitor.start()
    try:
        await asyncio.wait_for(finished.wait(), timeout)
    except asyncio.TimeoutError:
        return None
    finally:
        await monitor.stop()
    return outcome[-1]


def _report(result: SyncResult) -> None:
    if result.offline:
        views.print_warning(f"Network unavailable; {result.remaining} change(s) remain queued.")
        raise typer.Exit(0)

    views.print_success(f"Applied {result.applied} queued change(s).")
    for error in result.errors:
        views.print_error(error)
    if result.remaining:
        views.print_info(f"{result.remaining} change(s) still queued.")
    if result.halted:
        raise typer.Exit(1)


@app.command()
def sync(
    ctx: typer.Context,
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Wait for the network to come back, then sync"),
    ] = False,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", min=0, help="Give up watching after this many seconds"),
    ] = None,
    interval: Annotated[
        float,
        typer.Option("--interval", min=0.1, help="Seconds between network checks while watching"),
    ] = CONNECTIVITY_PROBE_SECONDS,
) -> None:
    """Replay queued changes to the remote store in order."""
    state = get_state(ctx)
    queue = state.store.queue()

    try:
        if watch:
            queue.list_operations()
            result = run(
                watch_and_sync(
                    queue, state.store.remote(), state.probe(), state.store.event_log(), timeout, interval
                )
            )
            if result is None:
                views.print_warning(
                    f"Network still unavailable after {timeout:g}s; {queue.size()} change(s) remain queued."
                )
                raise typer.Exit(0)
        else:
            result = run(
                sync_offline_queue(queue, state.store.remote(), state.probe(), state.store.event_log())
            )
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    _report(result)


@app.command("queue-status")
def queue_status(ctx: typer.Context) -> None:
    """Show changes waiting in the offline queue."""
    state = get_state(ctx)
    try:
        operations = state.store.queue().list_operations()
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if not operations:
        views.print_info("Offline queue is empty.")
        return
    views.console.print(views.format_queue_table(operations))
