"""Snapshot reconciliation.

Fetches the REST view of a session (session, tasks, approvals, artifacts,
clarifications, workspace sessions) and folds it into the current graph.
Stream-derived history is preserved: a merge only upserts task status nodes,
appends pending approvals and merges artifacts that are strictly newer.
Open clarifications and workspace sessions are replaced wholesale by the
server's lists; the workspace event log is kept.
"""

import asyncio
from typing import Optional

from tasksync.cache import GraphCache
from tasksync.client import SessionApi
from tasksync.client.errors import ClientError
from tasksync.errors import TasksyncError
from tasksync.logging import get_logger
from tasksync.models import (
    AgentMode,
    ApprovalRecord,
    ApprovalStatus,
    ArtifactEnvelope,
    ArtifactRecord,
    ClarificationRequest,
    SessionRecord,
    TaskGraph,
    TaskRecord,
    WorkspaceSession,
    TaskStatusNode,
    ToolCallNode,
    append_node,
    filter_risk_tags,
    is_placeholder_session,
    map_risk_level,
    map_task_status,
    parse_artifact_payload,
    upsert_node,
)
from tasksync.reducer import ReducerContext, iso_from_ms
from tasksync.sync.store import GraphStore

logger = get_logger(__name__)


def _task_node(task: TaskRecord, existing: Optional[TaskStatusNode]) -> TaskStatusNode:
    node = TaskStatusNode(
        id=f"task-{task.task_id}",
        task_id=task.task_id,
        title=task.title,
        prompt=task.prompt,
        status=task.status,
        mapped_status=map_task_status(task.status),
        model_id=task.model_id,
        provider_id=task.provider_id,
        fallback_notice=task.fallback_notice,
        metadata=task.metadata,
        timestamp=iso_from_ms(task.updated_at),
    )
    # Keep the existing object so an unchanged snapshot leaves the graph as is
    return existing if existing == node else node


def _approval_node(approval: ApprovalRecord) -> ToolCallNode:
    risk_tags = filter_risk_tags(approval.risk_tags)
    args: dict = {"action": approval.action, "riskTags": risk_tags}
    if approval.reason:
        args["reason"] = approval.reason
    return ToolCallNode(
        id=f"approval-{approval.approval_id}",
        tool_name=approval.action,
        args=args,
        requires_approval=True,
        approval_id=approval.approval_id,
        risk_level=map_risk_level(risk_tags),
        task_id=approval.task_id,
        timestamp=iso_from_ms(approval.created_at),
    )


def merge_artifacts(
    existing: dict[str, ArtifactRecord], envelopes: list[ArtifactEnvelope]
) -> dict[str, ArtifactRecord]:
    """Merge snapshot artifacts; a record replaces an entry only if newer.

    Returns ``existing`` itself when nothing was merged.
    """
    merged = existing
    for envelope in envelopes:
        payload = parse_artifact_payload(envelope.artifact)
        if payload is None:
            continue
        current = merged.get(envelope.artifact_id)
        if current is not None and not (
            envelope.updated_at and envelope.updated_at > (current.updated_at or 0)
        ):
            continue
        if merged is existing:
            merged = dict(existing)
        merged[envelope.artifact_id] = ArtifactRecord(
            payload=payload,
            updated_at=envelope.updated_at,
            task_id=envelope.task_id,
            version=envelope.version,
            status=envelope.status,
            applied_at=envelope.applied_at,
        )
    return merged


def derive_snapshot_state(
    prev: TaskGraph,
    session: SessionRecord,
    tasks: list[TaskRecord],
    approvals: list[ApprovalRecord],
    artifacts: list[ArtifactEnvelope],
    context: ReducerContext,
    clarifications: Optional[list[ClarificationRequest]] = None,
    workspace_sessions: Optional[list[WorkspaceSession]] = None,
) -> TaskGraph:
    """Fold a REST snapshot into ``prev``.

    Also refreshes the task title/prompt/metadata caches in ``context``.
    ``clarifications`` and ``workspace_sessions`` replace the graph's own
    when given.
    """
    ordered_tasks = sorted(tasks, key=lambda task: task.created_at)
    for task in ordered_tasks:
        if task.title:
            context.task_titles[task.task_id] = task.title
        if task.prompt:
            context.task_prompts[task.task_id] = task.prompt
        if task.metadata is not None:
            context.task_metadata[task.task_id] = task.metadata

    existing_status = {node.id: node for node in prev.task_nodes()}
    status_nodes = [
        _task_node(task, existing_status.get(f"task-{task.task_id}"))
        for task in ordered_tasks
    ]

    # Status nodes always follow the history nodes
    nodes = [node for node in prev.nodes if not isinstance(node, TaskStatusNode)]
    for node in status_nodes:
        nodes = upsert_node(nodes, node)
    if nodes == prev.nodes:
        nodes = prev.nodes

    pending = sorted(
        (a for a in approvals if a.status == ApprovalStatus.PENDING),
        key=lambda approval: approval.created_at,
    )
    for approval in pending:
        nodes = append_node(nodes, _approval_node(approval))

    latest_task = max(tasks, key=lambda task: task.updated_at, default=None)
    mapped = map_task_status(latest_task.status) if latest_task else None

    try:
        agent_mode = AgentMode(session.agent_mode)
    except ValueError:
        agent_mode = AgentMode.BUILD

    changes: dict = {
        "status": mapped or prev.status,
        "nodes": nodes,
        "artifacts": merge_artifacts(prev.artifacts, artifacts),
        "pending_approval_id": pending[-1].approval_id if pending else None,
        "agent_mode": agent_mode,
    }
    if clarifications is not None:
        changes["clarifications"] = list(clarifications)
    if workspace_sessions is not None:
        changes["workspace_sessions"] = {
            workspace.workspace_session_id: workspace for workspace in workspace_sessions
        }
    return prev.evolve(**changes)


class SnapshotReconciler:
    """Refreshes a session's graph from the REST snapshot endpoints."""

    def __init__(
        self,
        api: SessionApi,
        store: GraphStore,
        context: ReducerContext,
        cache: Optional[GraphCache] = None,
    ) -> None:
        self.api = api
        self.store = store
        self.context = context
        self.cache = cache

    @property
    def session_id(self) -> str:
        return self.store.session_id

    def _is_cache_stale(self, session: SessionRecord) -> bool:
        if self.cache is None:
            return False
        entry = self.cache.load_entry(self.session_id)
        return entry is not None and session.updated_at > entry.saved_at

    async def refresh(self) -> bool:
        """Fetch the snapshot and merge it into the store.

        Returns:
            True if a snapshot was applied, False if skipped or failed
        """
        session_id = self.session_id
        if is_placeholder_session(session_id) or self.store.closed:
            return False

        try:
            (
                session,
                tasks,
                approvals,
                artifacts,
                clarifications,
                workspace_sessions,
            ) = await asyncio.gather(
                self.api.get_session(session_id),
                self.api.list_tasks(session_id),
                self.api.list_approvals(session_id),
                self.api.list_artifacts(session_id),
                self.api.list_clarifications(session_id),
                self.api.list_workspace_sessions(session_id),
            )
        except (ClientError, TasksyncError) as e:
            logger.warning(f"Failed to load session state for {session_id}: {e}")
            return False

        if self.store.closed:
            return False

        stale = self._is_cache_stale(session)
        if stale:
            logger.info(f"Cached graph for {session_id} is stale, rebuilding")

        def apply(current: TaskGraph) -> TaskGraph:
            base = TaskGraph.empty(session_id) if stale else current
            return derive_snapshot_state(
                base,
                session,
                tasks,
                approvals,
                artifacts,
                self.context,
                clarifications=clarifications,
                workspace_sessions=workspace_sessions,
            )

        self.store.update(apply)
        return True
