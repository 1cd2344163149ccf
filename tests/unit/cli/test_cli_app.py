"""Tests for the tasksync CLI commands."""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

from tasksync.cache import GraphCache
from tasksync.cli.app import app
from tasksync.errors import ActionError
from tasksync.models import ApprovalStatus, TaskGraph, TaskStatus, ThinkingNode, ToolCallNode

TS = "2024-01-01T00:00:00.000Z"


def _cached_graph() -> TaskGraph:
    graph = TaskGraph(
        session_id="sess-1",
        status=TaskStatus.AWAITING_APPROVAL,
        pending_approval_id="a1",
        nodes=[
            ThinkingNode(id="think-1", content="reading files", timestamp=TS, event_id="1"),
            ToolCallNode(
                id="approval-a1",
                tool_name="delete_file",
                args={"action": "delete_file", "riskTags": ["delete"]},
                requires_approval=True,
                approval_id="a1",
                risk_level="high",
                timestamp=TS,
            ),
        ],
    )
    GraphCache().save("sess-1", graph)
    return graph


class TestApp:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        commands = ("follow", "show", "approve", "reject", "apply", "revert", "answer")
        for command in (*commands, "cache-clear"):
            assert command in result.output

    def test_url_option_reaches_state(self, runner):
        with patch("tasksync.cli.commands.actions._direct", new_callable=AsyncMock) as direct:
            direct.return_value = True
            result = runner.invoke(app, ["--url", "http://remote/api/", "approve", "a1"])

        assert result.exit_code == 0
        state = direct.await_args.args[0]
        assert state.api_url == "http://remote/api"

    def test_component_levels_from_environment(self, runner, monkeypatch):
        monkeypatch.setenv("TASKSYNC_LOGGING_COMPONENTS", "sync.reconciler=ERROR")

        result = runner.invoke(app, ["show", "sess-1"])

        assert result.exit_code == 1
        assert logging.getLogger("tasksync.sync.reconciler").level == logging.ERROR
        assert logging.getLogger("tasksync.stream.frames").level == logging.WARNING


class TestShow:
    def test_missing_cache_exits_with_error(self, runner):
        result = runner.invoke(app, ["show", "sess-1"])

        assert result.exit_code == 1
        assert "No cached graph" in result.output

    def test_json_prints_cached_graph(self, runner):
        graph = _cached_graph()

        result = runner.invoke(app, ["--json", "show", "sess-1"])

        assert result.exit_code == 0
        assert TaskGraph.model_validate(json.loads(result.stdout)) == graph

    def test_table_output(self, runner):
        _cached_graph()

        result = runner.invoke(app, ["show", "sess-1", "--limit", "1"])

        assert result.exit_code == 0
        assert "delete_file" in result.output
        assert "reading files" not in result.output

    def test_refresh_merges_snapshot(self, runner):
        async def fake_refresh(state, session_id, cache):
            return TaskGraph(
                session_id=session_id,
                nodes=[ThinkingNode(id="think-9", content="fresh", timestamp=TS)],
            )

        with patch("tasksync.cli.commands.show._refresh_graph", side_effect=fake_refresh):
            result = runner.invoke(app, ["--json", "show", "sess-1", "--refresh"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["nodes"][0]["id"] == "think-9"


class TestActions:
    def test_approve_direct(self, runner):
        with patch("tasksync.cli.commands.actions.SessionApi") as api_cls:
            api = api_cls.return_value
            api.resolve_approval = AsyncMock(return_value={})

            result = runner.invoke(app, ["--json", "approve", "a1"])

        assert result.exit_code == 0
        api.resolve_approval.assert_awaited_once_with("a1", ApprovalStatus.APPROVED)
        assert json.loads(result.stdout) == {
            "status": "success",
            "message": "Approve a1: done",
            "data": {"action": "approve", "id": "a1"},
        }

    def test_direct_failure_reports_error_code(self, runner):
        with patch("tasksync.cli.commands.actions.SessionApi") as api_cls:
            api_cls.return_value.revert_artifact = AsyncMock(
                side_effect=ActionError("nope", error_code="ACTION-RevertArtifactFailed")
            )

            result = runner.invoke(app, ["--json", "revert", "art-1"])

        assert result.exit_code == 1
        output = json.loads(result.stdout)
        assert output["status"] == "error"
        assert output["error_code"] == "ACTION-RevertArtifactFailed"

    def test_session_routed_action_failure(self, runner):
        with patch("tasksync.cli.commands.actions.SessionSync") as sync_cls:
            sync = sync_cls.return_value
            sync.reject = AsyncMock(return_value=False)
            sync.close = AsyncMock()

            result = runner.invoke(app, ["--json", "reject", "a1", "--session", "sess-1"])

        assert result.exit_code == 1
        assert sync_cls.call_args.args[0] == "sess-1"
        sync.reject.assert_awaited_once_with("a1")
        sync.close.assert_awaited_once()
        assert "local state reconciled" in json.loads(result.stdout)["message"]

    def test_answer_direct_passes_option(self, runner):
        with patch("tasksync.cli.commands.actions.SessionApi") as api_cls:
            api = api_cls.return_value
            api.submit_clarification = AsyncMock(return_value={})

            result = runner.invoke(
                app, ["--json", "answer", "q1", "use dev", "--option", "1"]
            )

        assert result.exit_code == 0
        api.submit_clarification.assert_awaited_once_with("q1", "use dev", 1)
        assert json.loads(result.stdout)["data"] == {"action": "answer", "id": "q1"}

    def test_answer_through_session(self, runner):
        with patch("tasksync.cli.commands.actions.SessionSync") as sync_cls:
            sync = sync_cls.return_value
            sync.answer_clarification = AsyncMock(return_value=True)
            sync.close = AsyncMock()

            result = runner.invoke(app, ["answer", "q1", "main", "--session", "sess-1"])

        assert result.exit_code == 0
        sync.answer_clarification.assert_awaited_once_with("q1", "main", None)

    def test_blank_answer_is_refused(self, runner):
        with patch("tasksync.cli.commands.actions.SessionApi") as api_cls:
            result = runner.invoke(app, ["--json", "answer", "q1", "   "])

        assert result.exit_code == 1
        api_cls.assert_not_called()
        assert json.loads(result.stdout)["status"] == "error"


class TestCacheClear:
    def test_clear_all(self, runner):
        _cached_graph()

        result = runner.invoke(app, ["--json", "cache-clear"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"] == {"removed": 1}
        assert GraphCache().load("sess-1") is None

    def test_evict_one(self, runner):
        _cached_graph()

        result = runner.invoke(app, ["cache-clear", "sess-1"])

        assert result.exit_code == 0
        assert "Evicted" in result.output
        assert GraphCache().load("sess-1") is None


class FakeSync:
    """Stands in for SessionSync: emits one graph, then loses the server."""

    def __init__(self, session_id, client, cache=None) -> None:
        self.graph = TaskGraph.empty(session_id)
        self.listeners: list = []

    def subscribe(self, listener):
        self.listeners.append(listener)

    async def __aenter__(self):
        graph = TaskGraph(
            session_id="sess-1",
            nodes=[ThinkingNode(id="think-1", content="hello", timestamp=TS)],
        )
        for listener in self.listeners:
            listener(graph)
        raise RuntimeError("server went away")

    async def __aexit__(self, *exc):
        return None


class TestFollow:
    def test_json_lines_then_error(self, runner):
        with patch("tasksync.sync.SessionSync", FakeSync):
            result = runner.invoke(app, ["--json", "follow", "sess-1", "--no-cache"])

        lines = [json.loads(line) for line in result.stdout.splitlines() if line]
        assert result.exit_code == 1
        assert lines[0]["id"] == "think-1"
        assert lines[-1] == {"status": "error", "message": "server went away"}

    def test_interrupt_exits_cleanly(self, runner):
        def interrupted(coro):
            coro.close()
            raise KeyboardInterrupt

        with patch("asyncio.run", side_effect=interrupted):
            result = runner.invoke(app, ["follow", "sess-1"])

        assert result.exit_code == 0
        assert "Resume: tasksync follow sess-1" in result.output


class TestTelemetry:
    def test_span_records_arguments(self):
        from tasksync.cli.telemetry import trace_cli_command

        span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__.return_value = span

        with patch("tasksync.cli.telemetry.tracer", tracer):

            @trace_cli_command("approve")
            def command(ctx=None, approval_id=None):
                return "ok"

            assert command(ctx=object(), approval_id="a1") == "ok"

        tracer.start_as_current_span.assert_called_once_with("cli.approve")
        span.set_attribute.assert_any_call("cli.command", "approve")
        span.set_attribute.assert_any_call("cli.args", json.dumps({"approval_id": "a1"}))
        span.set_attribute.assert_any_call("tasksync.approval_id", "a1")

    def test_span_records_failure(self):
        from tasksync.cli.telemetry import trace_cli_command

        span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__.return_value = span

        with patch("tasksync.cli.telemetry.tracer", tracer):

            @trace_cli_command("show")
            def command(session_id=None):
                raise ValueError("bad")

            try:
                command(session_id="s1")
            except ValueError:
                pass

        span.record_exception.assert_called_once()
        status = span.set_status.call_args.args[0]
        assert status.status_code.name == "ERROR"
