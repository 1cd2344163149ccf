"""Cache housekeeping command."""

from typing import Optional

import typer

from tasksync.cache import GraphCache
from tasksync.cli.output import print_success
from tasksync.cli.state import CLIState
from tasksync.cli.telemetry import trace_cli_command


@trace_cli_command("cache_clear")
def cache_clear(
    ctx: typer.Context,
    session_id: Optional[str] = typer.Argument(
        None, help="Session to evict (all sessions if omitted)"
    ),
) -> None:
    """Remove cached task graphs.

    Examples:
        tasksync cache-clear 3f2a9c

        tasksync cache-clear
    """
    state: CLIState = ctx.obj
    cache = GraphCache()

    if session_id:
        cache.evict(session_id)
        print_success(
            f"Evicted cached graph for {session_id}",
            state,
            data={"session_id": session_id},
        )
        return

    removed = cache.clear()
    print_success(f"Removed {removed} cached graph(s)", state, data={"removed": removed})
