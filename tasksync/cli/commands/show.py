"""Show command implementation."""

import asyncio
from typing import Optional

import typer

from tasksync.cache import GraphCache
from tasksync.cli.output import print_error, print_graph
from tasksync.cli.state import CLIState
from tasksync.cli.telemetry import trace_cli_command
from tasksync.client import AsyncApiClient
from tasksync.models import TaskGraph
from tasksync.sync import SessionSync


@trace_cli_command("show")
def show(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID to show"),
    refresh: bool = typer.Option(
        False, "--refresh", "-r", help="Merge a fresh server snapshot first"
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", help="Show only the last N nodes"
    ),
) -> None:
    """Show the locally cached task graph of a session.

    Examples:
        tasksync show 3f2a9c

        tasksync show 3f2a9c --refresh --limit 50
    """
    state: CLIState = ctx.obj
    cache = GraphCache()

    if refresh:
        try:
            graph = asyncio.run(_refresh_graph(state, session_id, cache))
        except Exception as e:
            print_error(str(e), state, e)
            raise typer.Exit(1) from None
    else:
        graph = cache.load(session_id)

    if graph is None or not graph.nodes:
        print_error(
            f"No cached graph for session {session_id}. "
            f"Try: tasksync show {session_id} --refresh",
            state,
        )
        raise typer.Exit(1)

    print_graph(graph, state, limit=limit)


async def _refresh_graph(
    state: CLIState, session_id: str, cache: GraphCache
) -> TaskGraph:
    """Restore from cache, merge one snapshot, and return the result."""
    async with AsyncApiClient(base_url=state.api_url) as client:
        sync = SessionSync(session_id, client, cache=cache)
        try:
            await sync.refresh()
            return sync.graph
        finally:
            await sync.close()
