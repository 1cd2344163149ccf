"""Event handlers: one pure transform per stream event type.

Every handler has the signature
``(graph, event_id, data, now, context) -> TaskGraph`` and returns the input
graph (same object) when the payload is malformed or changes nothing.
Only the task caches in ``context`` are mutated here.
"""

import math
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError

from tasksync.logging import get_logger
from tasksync.models import (
    MAX_WORKSPACE_EVENTS,
    AgentMode,
    ArtifactRecord,
    ArtifactStatus,
    CheckpointNode,
    ClarificationRequest,
    MessageUsage,
    PlanArtifact,
    PlanUpdateNode,
    PolicyDecision,
    PolicyDecisionNode,
    RiskLevel,
    TaskGraph,
    TaskStatus,
    TaskStatusNode,
    ThinkingNode,
    TokenUsage,
    ToolCallNode,
    ToolOutputNode,
    TurnMarkerNode,
    WorkspaceEvent,
    WorkspaceSession,
    WorkspaceSessionStatus,
    append_node,
    filter_risk_tags,
    map_risk_level,
    map_task_status,
    parse_artifact_payload,
    parse_plan_steps,
    upsert_node,
)
from tasksync.reducer.context import (
    ReducerContext,
    epoch_ms,
    iso_from_ms,
    iso_timestamp,
)

logger = get_logger(__name__)

EventHandler = Callable[[TaskGraph, str, Any, datetime, ReducerContext], TaskGraph]


def _str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _num(data: dict, key: str) -> Optional[float]:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # json.loads accepts NaN and Infinity
    return value if math.isfinite(value) else None


def _bool(data: dict, key: str) -> Optional[bool]:
    value = data.get(key)
    return value if isinstance(value, bool) else None


def _dict(data: dict, key: str) -> Optional[dict]:
    value = data.get(key)
    return value if isinstance(value, dict) else None


def format_status(value: str) -> str:
    return value.replace("_", " ")


# --- Task lifecycle ---


def _resolve_title(
    task_id: Optional[str], title: Optional[str], context: ReducerContext
) -> str:
    if title is None and task_id:
        title = context.task_titles.get(task_id)
    if task_id and title:
        context.task_titles[task_id] = title
    if title is not None:
        return title
    return f"Task {task_id[:8]}" if task_id else "Task"


def _resolve_prompt(
    task_id: Optional[str], prompt: Optional[str], context: ReducerContext
) -> Optional[str]:
    if not prompt and task_id:
        prompt = context.task_prompts.get(task_id)
    if task_id and prompt:
        context.task_prompts[task_id] = prompt
    return prompt


def _resolve_metadata(
    task_id: Optional[str], incoming: Optional[dict], context: ReducerContext
) -> Optional[dict]:
    if task_id and incoming is not None:
        context.task_metadata[task_id] = incoming
        return incoming
    if task_id:
        return context.task_metadata.get(task_id)
    return incoming


def handle_task_update(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """task.created / task.updated: upsert the task's status node."""
    if not isinstance(data, dict):
        return graph

    task_id = _str(data, "taskId")
    status_value = _str(data, "status")
    title = _resolve_title(task_id, _str(data, "title"), context)
    prompt = _resolve_prompt(task_id, _str(data, "prompt"), context)
    metadata = _resolve_metadata(task_id, _dict(data, "metadata"), context)
    mapped = map_task_status(status_value)

    nodes = graph.nodes
    if task_id and status_value:
        node = TaskStatusNode(
            id=f"task-{task_id}",
            task_id=task_id,
            event_id=event_id,
            title=title,
            prompt=prompt,
            status=status_value,
            mapped_status=mapped,
            model_id=_str(data, "modelId"),
            provider_id=_str(data, "providerId"),
            fallback_notice=_str(data, "fallbackNotice"),
            metadata=metadata,
            timestamp=iso_timestamp(now),
        )
        nodes = upsert_node(nodes, node)

    return graph.evolve(status=mapped or graph.status, nodes=nodes)


# --- Approvals ---


def handle_approval_required(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    approval_id = _str(data, "approvalId")
    if not approval_id:
        return graph

    action = _str(data, "action") or "tool"
    risk_tags = filter_risk_tags(data.get("riskTags"))
    reason = _str(data, "reason")
    args: dict[str, Any] = {"action": action, "riskTags": risk_tags}
    if reason:
        args["reason"] = reason

    node = ToolCallNode(
        id=f"approval-{approval_id}",
        tool_name=action,
        args=args,
        requires_approval=True,
        approval_id=approval_id,
        risk_level=map_risk_level(risk_tags),
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(
        status=TaskStatus.AWAITING_APPROVAL,
        pending_approval_id=approval_id,
        nodes=append_node(graph.nodes, node),
    )


def handle_approval_resolved(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    approval_id = _str(data, "approvalId")
    status = _str(data, "status") or "resolved"

    pending = graph.pending_approval_id
    if pending is not None and pending == approval_id:
        pending = None
    graph_status = graph.status
    if graph_status == TaskStatus.AWAITING_APPROVAL:
        graph_status = TaskStatus.RUNNING

    short_id = approval_id[:8] if approval_id else ""
    node = ThinkingNode(
        id=f"event-{event_id}",
        content=f"Approval {short_id} {format_status(status)}.",
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(
        pending_approval_id=pending,
        status=graph_status,
        nodes=append_node(graph.nodes, node),
    )


# --- Agent activity ---


def handle_agent_think(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    content = _str(data, "content")
    if content is None:
        return graph
    node = ThinkingNode(
        id=f"think-{event_id}",
        content=content,
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(nodes=append_node(graph.nodes, node))


def _risk_level(value: Optional[str]) -> Optional[RiskLevel]:
    try:
        return RiskLevel(value) if value is not None else None
    except ValueError:
        return None


def handle_tool_call(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    tool = _str(data, "tool")
    if tool is None:
        return graph
    node = ToolCallNode(
        id=f"call-{event_id}",
        tool_name=tool,
        args=_dict(data, "args") or {},
        requires_approval=_bool(data, "requiresApproval"),
        approval_id=_str(data, "approvalId"),
        risk_level=_risk_level(_str(data, "riskLevel")),
        activity=_str(data, "activity"),
        activity_label=_str(data, "activityLabel"),
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(nodes=append_node(graph.nodes, node))


def handle_tool_result(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    attempts = _num(data, "attempts")
    node = ToolOutputNode(
        id=f"out-{event_id}",
        call_id=_str(data, "callId") or "unknown",
        tool_name=_str(data, "toolName"),
        output=data.get("result"),
        is_error=_bool(data, "isError"),
        error_code=_str(data, "errorCode"),
        duration_ms=_num(data, "durationMs"),
        attempts=int(attempts) if attempts is not None else None,
        activity=_str(data, "activity"),
        activity_label=_str(data, "activityLabel"),
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(nodes=append_node(graph.nodes, node))


# --- Plans and artifacts ---


def handle_plan_update(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """agent.plan / task.plan: record the plan artifact and a plan_update node.

    With an ``updatedAt`` the plan is subject to last-write-wins like any
    artifact; without one it overwrites the steps and keeps the existing
    bookkeeping.
    """
    if not isinstance(data, dict):
        return graph
    steps = parse_plan_steps(data.get("plan"))
    if steps is None:
        return graph

    artifact_id = _str(data, "artifactId") or "plan"
    task_id = _str(data, "taskId")
    existing = graph.artifacts.get(artifact_id)
    if (
        existing is not None
        and isinstance(existing.payload, PlanArtifact)
        and existing.payload.steps == steps
    ):
        return graph

    updated_at = _num(data, "updatedAt")
    if existing is not None and updated_at is not None:
        if not existing.is_superseded_by(int(updated_at)):
            return graph

    plan = PlanArtifact(steps=steps)
    if existing is not None:
        record = existing.model_copy(
            update={
                "payload": plan,
                "task_id": task_id or existing.task_id,
                "updated_at": (
                    int(updated_at) if updated_at is not None else existing.updated_at
                ),
            }
        )
    else:
        record = ArtifactRecord(
            payload=plan,
            task_id=task_id,
            updated_at=int(updated_at) if updated_at is not None else None,
        )

    node = PlanUpdateNode(
        id=f"plan-{event_id}",
        plan=plan,
        task_id=task_id,
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(
        artifacts={**graph.artifacts, artifact_id: record},
        nodes=append_node(graph.nodes, node),
    )


def _artifact_status(value: Optional[str]) -> Optional[ArtifactStatus]:
    try:
        return ArtifactStatus(value) if value is not None else None
    except ValueError:
        return None


def handle_artifact_update(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """agent.artifact: last-write-wins upsert keyed by the artifact id."""
    if not isinstance(data, dict):
        return graph
    artifact_id = _str(data, "id")
    if artifact_id is None:
        return graph
    payload = parse_artifact_payload(data.get("artifact"))
    if payload is None:
        return graph

    updated_at = _num(data, "updatedAt")
    event_time = int(updated_at) if updated_at is not None else epoch_ms(now)
    existing = graph.artifacts.get(artifact_id)
    if existing is not None and not existing.is_superseded_by(event_time):
        logger.debug(
            f"Ignoring stale artifact {artifact_id} ({event_time} <= {existing.updated_at})"
        )
        return graph

    version = _num(data, "version")
    applied_at = _num(data, "appliedAt")
    record = ArtifactRecord(
        payload=payload,
        updated_at=event_time,
        task_id=_str(data, "taskId"),
        status=_artifact_status(_str(data, "status"))
        or (existing.status if existing else None),
        version=int(version) if version is not None else (
            existing.version if existing else None
        ),
        applied_at=int(applied_at) if applied_at is not None else (
            existing.applied_at if existing else None
        ),
    )
    return graph.evolve(artifacts={**graph.artifacts, artifact_id: record})


# --- Session-level state ---


def handle_session_mode_changed(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    mode = _str(data, "mode")
    if mode is None:
        return graph
    try:
        agent_mode = AgentMode(mode)
    except ValueError:
        agent_mode = AgentMode.BUILD
    return graph.evolve(agent_mode=agent_mode)


def _token_counts(data: Any) -> Optional[tuple[int, int, int]]:
    if not isinstance(data, dict):
        return None
    counts = (
        _num(data, "inputTokens"),
        _num(data, "outputTokens"),
        _num(data, "totalTokens"),
    )
    if any(count is None for count in counts):
        return None
    return tuple(int(count) for count in counts)


def handle_usage_updated(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    counts = _token_counts(data)
    if counts is None:
        return graph
    usage = TokenUsage(
        input_tokens=counts[0], output_tokens=counts[1], total_tokens=counts[2]
    )
    return graph.evolve(usage=usage)


def handle_token_usage(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """token.usage: per-message usage keyed by message id or task stream."""
    counts = _token_counts(data)
    if counts is None:
        return graph

    message_id = _str(data, "messageId")
    if message_id is None:
        task_id = _str(data, "taskId")
        if task_id is None:
            return graph
        message_id = f"task-stream-{task_id}"

    context_window = _num(data, "contextWindow")
    usage = MessageUsage(
        input_tokens=counts[0],
        output_tokens=counts[1],
        total_tokens=counts[2],
        context_window=int(context_window) if context_window is not None else None,
        utilization=_num(data, "utilization"),
        model_id=_str(data, "modelId"),
        provider_id=_str(data, "providerId"),
        cost_usd=_num(data, "costUsd"),
    )
    return graph.evolve(message_usage={**graph.message_usage, message_id: usage})


# --- Turns, policy and checkpoints ---


def _append_turn_marker(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, phase: str
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    turn = _num(data, "turn")
    if turn is None or turn != int(turn):
        return graph
    node = TurnMarkerNode(
        id=f"turn-{phase}-{int(turn)}-{event_id}",
        turn=int(turn),
        phase=phase,
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(nodes=append_node(graph.nodes, node))


def handle_turn_start(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    return _append_turn_marker(graph, event_id, data, now, "start")


def handle_turn_end(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    return _append_turn_marker(graph, event_id, data, now, "end")


def _policy_decision(value: Optional[str]) -> Optional[PolicyDecision]:
    try:
        return PolicyDecision(value) if value is not None else None
    except ValueError:
        return None


def handle_policy_decision(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """policy.decision: record how the tool policy ruled on a call."""
    if not isinstance(data, dict):
        return graph
    node = PolicyDecisionNode(
        id=f"policy-{event_id}",
        tool_name=_str(data, "toolName"),
        decision=_policy_decision(_str(data, "decision")),
        policy_rule_id=_str(data, "policyRuleId"),
        policy_action=_str(data, "policyAction"),
        risk_tags=filter_risk_tags(data.get("riskTags")),
        risk_score=_num(data, "riskScore"),
        reason=_str(data, "reason"),
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_timestamp(now),
    )
    return graph.evolve(nodes=append_node(graph.nodes, node))


def _append_checkpoint(
    graph: TaskGraph,
    event_id: str,
    data: Any,
    now: datetime,
    action: str,
    time_key: str,
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    checkpoint_id = _str(data, "checkpointId")
    if checkpoint_id is None:
        return graph
    at = _num(data, time_key)
    step = _num(data, "currentStep")
    node = CheckpointNode(
        id=f"checkpoint-{action}-{checkpoint_id}-{event_id}",
        checkpoint_id=checkpoint_id,
        action=action,
        # Restores report the step only
        status=_str(data, "status") if action == "created" else None,
        current_step=int(step) if step is not None else 0,
        task_id=_str(data, "taskId"),
        event_id=event_id,
        timestamp=iso_from_ms(at) if at is not None else iso_timestamp(now),
    )
    return graph.evolve(nodes=append_node(graph.nodes, node))


def handle_checkpoint_created(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    return _append_checkpoint(graph, event_id, data, now, "created", "createdAt")


def handle_checkpoint_restored(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    return _append_checkpoint(graph, event_id, data, now, "restored", "restoredAt")


# --- Clarifications ---


def handle_clarification_requested(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    raw = _dict(data, "request")
    if raw is None:
        return graph
    try:
        request = ClarificationRequest.model_validate(raw)
    except ValidationError:
        logger.debug(f"Ignoring malformed clarification request in event {event_id}")
        return graph
    if any(existing.id == request.id for existing in graph.clarifications):
        return graph
    return graph.evolve(clarifications=[*graph.clarifications, request])


def handle_clarification_answered(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    response = _dict(data, "response")
    request_id = _str(response, "requestId") if response is not None else None
    if not request_id:
        return graph
    return graph.evolve(
        clarifications=remove_clarification(graph.clarifications, request_id)
    )


def remove_clarification(
    requests: list[ClarificationRequest], request_id: str
) -> list[ClarificationRequest]:
    """Drop the request with ``request_id``; same list when absent."""
    kept = [request for request in requests if request.id != request_id]
    return requests if len(kept) == len(requests) else kept


# --- Workspace sessions ---


def _upsert_workspace_session(graph: TaskGraph, data: Any) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    raw = _dict(data, "workspaceSession")
    if raw is None:
        return graph
    try:
        session = WorkspaceSession.model_validate(raw)
    except ValidationError:
        return graph
    return graph.evolve(
        workspace_sessions={
            **graph.workspace_sessions,
            session.workspace_session_id: session,
        }
    )


def handle_workspace_session_upsert(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """workspace.session.created / workspace.session.updated."""
    return _upsert_workspace_session(graph, data)


def handle_workspace_session_ended(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    if not isinstance(data, dict):
        return graph
    workspace_session_id = _str(data, "workspaceSessionId")
    current = graph.workspace_sessions.get(workspace_session_id or "")
    if current is None:
        return graph

    ended_at = _num(data, "endedAt")
    ended = int(ended_at) if ended_at is not None else current.ended_at
    closed = current.model_copy(
        update={
            "status": WorkspaceSessionStatus.CLOSED.value,
            "ended_at": ended,
            "updated_at": ended if ended is not None else current.updated_at,
        }
    )
    return graph.evolve(
        workspace_sessions={**graph.workspace_sessions, workspace_session_id: closed}
    )


def _workspace_status(payload: dict) -> Optional[WorkspaceSessionStatus]:
    try:
        return WorkspaceSessionStatus(_str(payload, "status"))
    except ValueError:
        return None


def _track_workspace_event(
    session: WorkspaceSession, event: WorkspaceEvent
) -> WorkspaceSession:
    """Advance a session's status and ``updated_at`` from one of its events."""
    if event.kind == "status":
        status = _workspace_status(event.payload)
        if status is None:
            return session
        ended_at = session.ended_at
        if status == WorkspaceSessionStatus.CLOSED and ended_at is None:
            ended_at = event.timestamp
        return session.model_copy(
            update={
                "status": status.value,
                "updated_at": max(session.updated_at, event.timestamp),
                "ended_at": ended_at,
            }
        )
    if event.timestamp > session.updated_at:
        return session.model_copy(update={"updated_at": event.timestamp})
    return session


def handle_workspace_session_event(
    graph: TaskGraph, event_id: str, data: Any, now: datetime, context: ReducerContext
) -> TaskGraph:
    """workspace.session.event: append to the capped log, track the session."""
    if not isinstance(data, dict):
        return graph
    raw = _dict(data, "event")
    if raw is None:
        return graph
    try:
        event = WorkspaceEvent.model_validate(raw)
    except ValidationError:
        return graph

    key = event.workspace_session_id
    log = [*graph.workspace_events.get(key, []), event][-MAX_WORKSPACE_EVENTS:]
    changes: dict[str, Any] = {
        "workspace_events": {**graph.workspace_events, key: log}
    }

    current = graph.workspace_sessions.get(key)
    if current is not None:
        tracked = _track_workspace_event(current, event)
        if tracked is not current:
            changes["workspace_sessions"] = {**graph.workspace_sessions, key: tracked}
    return graph.evolve(**changes)


EVENT_HANDLERS: dict[str, EventHandler] = {
    "task.created": handle_task_update,
    "task.updated": handle_task_update,
    "approval.required": handle_approval_required,
    "approval.resolved": handle_approval_resolved,
    "agent.think": handle_agent_think,
    "agent.tool.call": handle_tool_call,
    "agent.tool.result": handle_tool_result,
    "agent.plan": handle_plan_update,
    "task.plan": handle_plan_update,
    "agent.artifact": handle_artifact_update,
    "session.mode.changed": handle_session_mode_changed,
    "session.usage.updated": handle_usage_updated,
    "token.usage": handle_token_usage,
    "agent.turn.start": handle_turn_start,
    "agent.turn.end": handle_turn_end,
    "policy.decision": handle_policy_decision,
    "checkpoint.created": handle_checkpoint_created,
    "checkpoint.restored": handle_checkpoint_restored,
    "clarification.requested": handle_clarification_requested,
    "clarification.answered": handle_clarification_answered,
    "workspace.session.created": handle_workspace_session_upsert,
    "workspace.session.updated": handle_workspace_session_upsert,
    "workspace.session.ended": handle_workspace_session_ended,
    "workspace.session.event": handle_workspace_session_event,
}
