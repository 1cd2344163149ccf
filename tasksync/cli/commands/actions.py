"""Approval, artifact and clarification action commands.

With ``--session`` the action goes through the session's sync engine, so the
local cache reflects the optimistic update (or the reconciled state after a
failure). Without it the remote call is made directly.
"""

import asyncio
from typing import Optional

import typer

from tasksync.cache import GraphCache
from tasksync.cli.output import print_error, print_success
from tasksync.cli.state import CLIState
from tasksync.cli.telemetry import trace_cli_command
from tasksync.client import AsyncApiClient, SessionApi
from tasksync.errors import ActionError
from tasksync.models import ApprovalStatus
from tasksync.sync import SessionSync

SESSION_OPTION_HELP = "Session owning the target; updates its cached graph"


async def _via_session(
    state: CLIState,
    session_id: str,
    action: str,
    target_id: str,
    reply: Optional[tuple[str, Optional[int]]] = None,
) -> bool:
    async with AsyncApiClient(base_url=state.api_url) as client:
        sync = SessionSync(session_id, client, cache=GraphCache())
        try:
            if reply is not None:
                return await sync.answer_clarification(target_id, *reply)
            if action == "approve":
                return await sync.approve(target_id)
            if action == "reject":
                return await sync.reject(target_id)
            if action == "apply":
                return await sync.apply_artifact(target_id)
            return await sync.revert_artifact(target_id)
        finally:
            await sync.close()


async def _direct(
    state: CLIState,
    action: str,
    target_id: str,
    reply: Optional[tuple[str, Optional[int]]] = None,
) -> bool:
    async with AsyncApiClient(base_url=state.api_url) as client:
        api = SessionApi(client)
        if reply is not None:
            await api.submit_clarification(target_id, *reply)
        elif action == "approve":
            await api.resolve_approval(target_id, ApprovalStatus.APPROVED)
        elif action == "reject":
            await api.resolve_approval(target_id, ApprovalStatus.REJECTED)
        elif action == "apply":
            await api.apply_artifact(target_id)
        else:
            await api.revert_artifact(target_id)
    return True


def _run_action(
    state: CLIState,
    action: str,
    target_id: str,
    session_id: Optional[str],
    reply: Optional[tuple[str, Optional[int]]] = None,
) -> None:
    try:
        if session_id:
            ok = asyncio.run(
                _via_session(state, session_id, action, target_id, reply)
            )
        else:
            ok = asyncio.run(_direct(state, action, target_id, reply))
    except ActionError as e:
        print_error(e.message, state, e)
        raise typer.Exit(1) from None
    except Exception as e:
        print_error(str(e), state, e)
        raise typer.Exit(1) from None

    if not ok:
        print_error(f"Failed to {action} {target_id}; local state reconciled", state)
        raise typer.Exit(1)
    print_success(
        f"{action.capitalize()} {target_id}: done",
        state,
        data={"action": action, "id": target_id},
    )


@trace_cli_command("approve")
def approve(
    ctx: typer.Context,
    approval_id: str = typer.Argument(..., help="Approval ID to approve"),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help=SESSION_OPTION_HELP
    ),
) -> None:
    """Approve a pending tool call.

    Examples:
        tasksync approve apr_91c2 --session 3f2a9c
    """
    _run_action(ctx.obj, "approve", approval_id, session_id)


@trace_cli_command("reject")
def reject(
    ctx: typer.Context,
    approval_id: str = typer.Argument(..., help="Approval ID to reject"),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help=SESSION_OPTION_HELP
    ),
) -> None:
    """Reject a pending tool call."""
    _run_action(ctx.obj, "reject", approval_id, session_id)


@trace_cli_command("apply")
def apply(
    ctx: typer.Context,
    artifact_id: str = typer.Argument(..., help="Artifact ID to apply"),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help=SESSION_OPTION_HELP
    ),
) -> None:
    """Apply an artifact (e.g. a diff) on the server."""
    _run_action(ctx.obj, "apply", artifact_id, session_id)


@trace_cli_command("revert")
def revert(
    ctx: typer.Context,
    artifact_id: str = typer.Argument(..., help="Artifact ID to revert"),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help=SESSION_OPTION_HELP
    ),
) -> None:
    """Revert a previously applied artifact."""
    _run_action(ctx.obj, "revert", artifact_id, session_id)


@trace_cli_command("answer")
def answer(
    ctx: typer.Context,
    request_id: str = typer.Argument(..., help="Clarification request ID"),
    text: str = typer.Argument(..., help="Answer text"),
    option: Optional[int] = typer.Option(
        None, "--option", "-o", help="Index of the chosen option, if any"
    ),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help=SESSION_OPTION_HELP
    ),
) -> None:
    """Answer a clarification question from the agent.

    Examples:
        tasksync answer q_12 "use the dev branch" --option 1 --session 3f2a9c
    """
    if not text.strip():
        print_error("Answer must not be empty", ctx.obj)
        raise typer.Exit(1)
    _run_action(ctx.obj, "answer", request_id, session_id, reply=(text, option))
