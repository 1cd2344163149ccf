"""CLI output helpers.

Human mode uses Rich formatting; JSON mode prints one JSON document per
message to stdout for scripting.
"""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from tasksync.cli.state import CLIState
from tasksync.models import (
    PlanUpdateNode,
    RiskLevel,
    TaskGraph,
    TaskStatusNode,
    ThinkingNode,
    ToolCallNode,
    ToolOutputNode,
)

console = Console()
error_console = Console(stderr=True)

_STATUS_STYLES = {
    "planning": "cyan",
    "running": "blue",
    "awaiting_approval": "yellow",
    "completed": "green",
    "failed": "red",
}

_RISK_STYLES = {RiskLevel.LOW: "green", RiskLevel.MEDIUM: "yellow", RiskLevel.HIGH: "red"}


def print_success(
    message: str, state: CLIState, data: Optional[dict[str, Any]] = None
) -> None:
    if state.json_mode:
        output: dict = {"status": "success", "message": message}
        if data is not None:
            output["data"] = data
        print(json.dumps(output))
    else:
        console.print(f"[green]{message}[/green]")


def print_error(
    message: str, state: CLIState, error: Optional[Exception] = None
) -> None:
    """Print an error (stderr in human mode, stdout JSON in JSON mode)."""
    error_code = getattr(error, "error_code", None) if error else None
    if state.json_mode:
        output = {"status": "error", "message": message}
        if error_code:
            output["error_code"] = error_code
        print(json.dumps(output))
        return

    error_console.print(f"[red bold]Error:[/red bold] {message}")
    if error_code:
        error_console.print(f"  [yellow]Code: {error_code}[/yellow]")


def describe_node(node: Any) -> str:
    """One-line human summary of a graph node."""
    if isinstance(node, ThinkingNode):
        return node.content
    if isinstance(node, ToolCallNode):
        if node.requires_approval and node.approval_id:
            tags = ", ".join(node.args.get("riskTags", [])) or "no risk tags"
            return f"approval needed for {node.tool_name} ({tags}) [{node.approval_id}]"
        return f"{node.tool_name}({json.dumps(node.args, default=str)[:60]})"
    if isinstance(node, ToolOutputNode):
        label = "error" if node.is_error else "ok"
        return f"{node.tool_name or node.call_id}: {label}"
    if isinstance(node, PlanUpdateNode):
        done = sum(1 for step in node.plan.steps if step.status == "completed")
        return f"plan {done}/{len(node.plan.steps)} steps done"
    if isinstance(node, TaskStatusNode):
        return f"{node.title}: {node.status}"
    return node.id


def _risk_markup(node: Any) -> str:
    risk = getattr(node, "risk_level", None)
    if risk is None:
        return ""
    return f"[{_RISK_STYLES[risk]}]{risk.value}[/{_RISK_STYLES[risk]}]"


def render_graph(graph: TaskGraph, limit: Optional[int] = None) -> Table:
    """Build a table of the graph's nodes (most recent last)."""
    style = _STATUS_STYLES.get(graph.status.value, "white")
    title = f"Session {graph.session_id} [{style}]{graph.status.value}[/{style}]"
    if graph.pending_approval_id:
        title += f" (pending approval {graph.pending_approval_id})"

    table = Table(title=title, show_lines=False)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Type")
    table.add_column("Risk")
    table.add_column("Detail", overflow="fold")

    nodes = graph.nodes[-limit:] if limit else graph.nodes
    for node in nodes:
        table.add_row(node.timestamp, node.type, _risk_markup(node), describe_node(node))
    return table


def render_artifacts(graph: TaskGraph) -> Table:
    table = Table(title="Artifacts")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Version", justify="right")
    for artifact_id, record in graph.artifacts.items():
        table.add_row(
            artifact_id,
            record.payload.type,
            record.status.value if record.status else "-",
            str(record.version) if record.version is not None else "-",
        )
    return table


def print_graph(graph: TaskGraph, state: CLIState, limit: Optional[int] = None) -> None:
    if state.json_mode:
        print(json.dumps(graph.to_wire()))
        return
    console.print(render_graph(graph, limit=limit))
    if graph.artifacts:
        console.print(render_artifacts(graph))
    if graph.usage:
        console.print(
            f"Tokens: {graph.usage.input_tokens} in / {graph.usage.output_tokens} out "
            f"({graph.usage.total_tokens} total)"
        )
