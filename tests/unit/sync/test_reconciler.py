"""Tests for snapshot reconciliation."""

from unittest.mock import AsyncMock

import httpx
import pytest

from tasksync.cache import GraphCache
from tasksync.client import APIError, AsyncApiClient, SessionApi
from tasksync.models import (
    AgentMode,
    ApprovalRecord,
    ApprovalStatus,
    ArtifactEnvelope,
    ArtifactRecord,
    ClarificationRequest,
    MarkdownArtifact,
    SessionRecord,
    TaskGraph,
    TaskRecord,
    TaskStatus,
    TaskStatusNode,
    ThinkingNode,
    ToolCallNode,
    WorkspaceEvent,
    WorkspaceSession,
)
from tasksync.reducer import ReducerContext
from tasksync.sync import GraphStore, SnapshotReconciler, derive_snapshot_state, merge_artifacts

TS = "2024-01-01T00:00:00.000Z"


def _session(updated_at: int = 0, agent_mode=None) -> SessionRecord:
    return SessionRecord(session_id="sess-1", updated_at=updated_at, agent_mode=agent_mode)


def _task(task_id: str, status: str, created_at: int, updated_at: int, **kwargs) -> TaskRecord:
    return TaskRecord(
        task_id=task_id,
        status=status,
        created_at=created_at,
        updated_at=updated_at,
        **kwargs,
    )


def _approval(approval_id: str, created_at: int, status=ApprovalStatus.PENDING) -> ApprovalRecord:
    return ApprovalRecord(
        approval_id=approval_id,
        action="delete_file",
        risk_tags=["delete", "bogus"],
        created_at=created_at,
        status=status,
    )


def _markdown(artifact_id: str, content: str, updated_at) -> ArtifactEnvelope:
    return ArtifactEnvelope(
        artifact_id=artifact_id,
        artifact={"type": "markdown", "content": content},
        updated_at=updated_at,
    )


def _history_graph() -> TaskGraph:
    return TaskGraph(
        session_id="sess-1",
        nodes=[ThinkingNode(id="think-1", content="hello", timestamp=TS, event_id="1")],
    )


def _mock_api(
    session=None,
    tasks=(),
    approvals=(),
    artifacts=(),
    clarifications=(),
    workspace_sessions=(),
) -> AsyncMock:
    api = AsyncMock(spec=SessionApi)
    api.get_session.return_value = session or _session()
    api.list_tasks.return_value = list(tasks)
    api.list_approvals.return_value = list(approvals)
    api.list_artifacts.return_value = list(artifacts)
    api.list_clarifications.return_value = list(clarifications)
    api.list_workspace_sessions.return_value = list(workspace_sessions)
    return api


class TestDeriveSnapshotState:
    def test_history_is_preserved_and_status_nodes_follow(self):
        prev = _history_graph()

        result = derive_snapshot_state(
            prev,
            _session(),
            [_task("t2", "running", 20, 30), _task("t1", "completed", 10, 40)],
            [],
            [],
            ReducerContext(),
        )

        assert [n.id for n in result.nodes] == ["think-1", "task-t1", "task-t2"]
        assert result.status == TaskStatus.COMPLETED

    def test_pending_approvals_are_appended_latest_is_pending(self):
        result = derive_snapshot_state(
            _history_graph(),
            _session(),
            [],
            [
                _approval("a2", 20),
                _approval("a1", 10),
                _approval("a0", 5, status=ApprovalStatus.APPROVED),
            ],
            [],
            ReducerContext(),
        )

        approvals = [n for n in result.nodes if isinstance(n, ToolCallNode)]
        assert [n.approval_id for n in approvals] == ["a1", "a2"]
        assert approvals[0].args == {"action": "delete_file", "riskTags": ["delete"]}
        assert approvals[0].risk_level == "high"
        assert result.pending_approval_id == "a2"

    def test_no_pending_approvals_clears_pending_id(self):
        prev = _history_graph().evolve(pending_approval_id="a1")

        result = derive_snapshot_state(prev, _session(), [], [], [], ReducerContext())

        assert result.pending_approval_id is None

    def test_unchanged_snapshot_returns_same_graph(self):
        context = ReducerContext()
        tasks = [_task("t1", "running", 10, 20, title="Build")]
        first = derive_snapshot_state(
            _history_graph(), _session(), tasks, [], [], context
        )

        again = derive_snapshot_state(first, _session(), tasks, [], [], context)

        assert again is first

    def test_task_caches_are_refreshed(self):
        context = ReducerContext()

        derive_snapshot_state(
            TaskGraph.empty("sess-1"),
            _session(),
            [
                _task("t1", "running", 10, 20, title="Build", prompt="make it", metadata={"k": 1}),
                _task("t2", "running", 11, 21),
            ],
            [],
            [],
            context,
        )

        assert context.task_titles == {"t1": "Build"}
        assert context.task_prompts == {"t1": "make it"}
        assert context.task_metadata == {"t1": {"k": 1}}

    def test_unknown_task_status_keeps_graph_status(self):
        prev = TaskGraph(session_id="sess-1", status=TaskStatus.RUNNING)

        result = derive_snapshot_state(
            prev, _session(), [_task("t1", "mystery", 1, 1)], [], [], ReducerContext()
        )

        assert result.status == TaskStatus.RUNNING
        node = result.find_node("task-t1")
        assert isinstance(node, TaskStatusNode)
        assert node.mapped_status is None

    @pytest.mark.parametrize(
        "mode, expected",
        [("plan", AgentMode.PLAN), ("build", AgentMode.BUILD), ("turbo", AgentMode.BUILD), (None, AgentMode.BUILD)],
    )
    def test_agent_mode(self, mode, expected):
        prev = TaskGraph(session_id="sess-1", agent_mode=AgentMode.PLAN)

        result = derive_snapshot_state(
            prev, _session(agent_mode=mode), [], [], [], ReducerContext()
        )

        assert result.agent_mode == expected

    def test_clarifications_and_workspace_sessions_replace_local_state(self):
        stale = WorkspaceSession(
            workspace_session_id="ws-old", session_id="sess-1", kind="terminal", status="active"
        )
        event = WorkspaceEvent(
            workspace_session_id="ws-old", sequence=1, timestamp=5, kind="log_line", payload={}
        )
        prev = _history_graph().evolve(
            clarifications=[ClarificationRequest(id="q-old", question="Stale?")],
            workspace_sessions={"ws-old": stale},
            workspace_events={"ws-old": [event]},
        )
        fresh = WorkspaceSession(
            workspace_session_id="ws-1", session_id="sess-1", kind="browser", status="paused"
        )

        result = derive_snapshot_state(
            prev,
            _session(),
            [],
            [],
            [],
            ReducerContext(),
            clarifications=[ClarificationRequest(id="q1", question="Which branch?")],
            workspace_sessions=[fresh],
        )

        assert [c.id for c in result.clarifications] == ["q1"]
        assert result.workspace_sessions == {"ws-1": fresh}
        assert result.workspace_events == {"ws-old": [event]}

    def test_omitted_clarifications_are_left_alone(self):
        prev = _history_graph().evolve(
            clarifications=[ClarificationRequest(id="q1", question="Which branch?")]
        )

        result = derive_snapshot_state(prev, _session(), [], [], [], ReducerContext())

        assert result.clarifications == prev.clarifications


class TestMergeArtifacts:
    def test_newer_snapshot_does_not_override(self):
        existing = {
            "art-1": ArtifactRecord(payload=MarkdownArtifact(content="stream"), updated_at=100)
        }

        merged = merge_artifacts(existing, [_markdown("art-1", "snapshot", 50)])

        assert merged is existing

    def test_strictly_newer_snapshot_replaces(self):
        existing = {
            "art-1": ArtifactRecord(payload=MarkdownArtifact(content="stream"), updated_at=100)
        }

        merged = merge_artifacts(existing, [_markdown("art-1", "snapshot", 101)])

        assert merged["art-1"].payload.content == "snapshot"
        assert existing["art-1"].payload.content == "stream"

    def test_missing_entries_are_added_and_invalid_payloads_skipped(self):
        envelopes = [
            _markdown("art-1", "new", None),
            ArtifactEnvelope(artifact_id="art-2", artifact={"type": "video"}),
        ]

        merged = merge_artifacts({}, envelopes)

        assert list(merged) == ["art-1"]


class TestSnapshotReconciler:
    @pytest.mark.asyncio
    async def test_refresh_applies_snapshot(self):
        store = GraphStore(_history_graph())
        api = _mock_api(tasks=[_task("t1", "running", 1, 2)], approvals=[_approval("a1", 3)])
        reconciler = SnapshotReconciler(api, store, ReducerContext())

        assert await reconciler.refresh() is True

        assert [n.id for n in store.graph.nodes] == ["think-1", "task-t1", "approval-a1"]
        assert store.graph.pending_approval_id == "a1"
        api.get_session.assert_awaited_once_with("sess-1")

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_graph_untouched(self):
        graph = _history_graph()
        store = GraphStore(graph)
        api = _mock_api()
        api.list_tasks.side_effect = APIError("boom", status_code=500)
        reconciler = SnapshotReconciler(api, store, ReducerContext())

        assert await reconciler.refresh() is False
        assert store.graph is graph

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["", "undefined"])
    async def test_placeholder_session_is_skipped(self, session_id):
        api = _mock_api()
        reconciler = SnapshotReconciler(api, GraphStore(TaskGraph.empty(session_id)), ReducerContext())

        assert await reconciler.refresh() is False
        api.get_session.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_closed_store_applies_nothing(self):
        store = GraphStore(_history_graph())
        store.close()
        api = _mock_api(tasks=[_task("t1", "running", 1, 2)])

        assert await SnapshotReconciler(api, store, ReducerContext()).refresh() is False
        assert len(store.graph.nodes) == 1

    @pytest.mark.asyncio
    async def test_store_closed_during_fetch_applies_nothing(self):
        store = GraphStore(_history_graph())
        api = _mock_api(tasks=[_task("t1", "running", 1, 2)])

        async def close_then_return(session_id):
            store.close()
            return _session()

        api.get_session.side_effect = close_then_return

        assert await SnapshotReconciler(api, store, ReducerContext()).refresh() is False
        assert len(store.graph.nodes) == 1

    @pytest.mark.asyncio
    async def test_stale_cache_is_rebuilt_from_snapshot(self, tmp_path):
        cache = GraphCache(directory=tmp_path / "graphs", clock=lambda: 1000.0)
        graph = _history_graph()
        cache.save("sess-1", graph)
        store = GraphStore(graph, cache)
        api = _mock_api(
            session=_session(updated_at=2_000_000),
            tasks=[_task("t1", "running", 1, 2)],
        )

        await SnapshotReconciler(api, store, ReducerContext(), cache).refresh()

        assert [n.id for n in store.graph.nodes] == ["task-t1"]

    @pytest.mark.asyncio
    async def test_fresh_cache_is_merged(self, tmp_path):
        cache = GraphCache(directory=tmp_path / "graphs", clock=lambda: 1000.0)
        graph = _history_graph()
        cache.save("sess-1", graph)
        store = GraphStore(graph, cache)
        api = _mock_api(
            session=_session(updated_at=500_000),
            tasks=[_task("t1", "running", 1, 2)],
        )

        await SnapshotReconciler(api, store, ReducerContext(), cache).refresh()

        assert [n.id for n in store.graph.nodes] == ["think-1", "task-t1"]

    @pytest.mark.asyncio
    async def test_dropped_connection_leaves_graph_untouched(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("server disconnected", request=request)

        graph = _history_graph()
        store = GraphStore(graph)
        client = AsyncApiClient(
            base_url="http://test/api", max_retries=0, transport=httpx.MockTransport(handler)
        )

        async with client:
            reconciler = SnapshotReconciler(SessionApi(client), store, ReducerContext())

            assert await reconciler.refresh() is False

        assert store.graph is graph

    @pytest.mark.asyncio
    async def test_refresh_loads_clarifications(self):
        store = GraphStore(_history_graph())
        api = _mock_api(clarifications=[ClarificationRequest(id="q1", question="Which?")])

        assert await SnapshotReconciler(api, store, ReducerContext()).refresh() is True

        assert [c.id for c in store.graph.clarifications] == ["q1"]
        api.list_clarifications.assert_awaited_once_with("sess-1")
        api.list_workspace_sessions.assert_awaited_once_with("sess-1")
