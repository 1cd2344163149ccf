"""Follow command implementation.

Implements ``tasksync follow <session-id>``: keeps the session's graph in
sync and prints every new node until interrupted.

Heavy imports are deferred inside the function body to keep CLI startup
fast.
"""

import typer

from tasksync.cli.telemetry import trace_cli_command


@trace_cli_command("follow")
def follow(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID to follow"),
    tail: int = typer.Option(
        20, "--tail", "-n", help="Cached nodes to show before following"
    ),
    no_cache: bool = typer.Option(
        False, "--no-cache", help="Neither restore from nor write to the cache"
    ),
) -> None:
    """Follow a session's task activity live.

    Streams events when the server supports it and falls back to polling
    snapshots otherwise. Ctrl+C stops following; the agent keeps running.

    Examples:
        tasksync follow 3f2a9c
    """
    import asyncio
    import json

    from tasksync.cache import GraphCache
    from tasksync.cli.output import console, describe_node, print_error, print_graph
    from tasksync.cli.state import CLIState
    from tasksync.client import AsyncApiClient
    from tasksync.models import TaskGraph
    from tasksync.sync import SessionSync

    state: CLIState = ctx.obj
    printed: set[str] = set()
    last_status: list[str] = []

    def on_change(graph: TaskGraph) -> None:
        for node in graph.nodes:
            if node.id in printed:
                continue
            printed.add(node.id)
            if state.json_mode:
                print(json.dumps(node.to_wire()))
            else:
                console.print(
                    f"[dim]{node.timestamp}[/dim] [bold]{node.type}[/bold] "
                    f"{describe_node(node)}"
                )
        if not state.json_mode and last_status != [graph.status.value]:
            last_status[:] = [graph.status.value]
            console.print(f"[cyan]Status: {graph.status.value}[/cyan]")

    async def _follow_session() -> None:
        cache = None if no_cache else GraphCache()
        async with AsyncApiClient(base_url=state.api_url) as client:
            sync = SessionSync(session_id, client, cache=cache)
            if sync.graph.nodes:
                if not state.json_mode:
                    print_graph(sync.graph, state, limit=tail)
                printed.update(node.id for node in sync.graph.nodes)
            sync.subscribe(on_change)
            async with sync:
                await asyncio.Event().wait()

    try:
        asyncio.run(_follow_session())
    except KeyboardInterrupt:
        if not state.json_mode:
            console.print("\n[yellow]Stopped following[/yellow]")
            console.print(f"  Resume: tasksync follow {session_id}")
        raise typer.Exit(0) from None
    except Exception as e:
        print_error(str(e), state, e)
        raise typer.Exit(1) from None
