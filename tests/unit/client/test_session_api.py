"""Tests for the SessionApi facade."""

import json

import httpx
import pytest

from tasksync.client import AsyncApiClient, SessionApi
from tasksync.errors import ActionError, PayloadValidationError
from tasksync.models import ApprovalStatus, ArtifactStatus, MarkdownArtifact


def _api(routes: dict, recorded: list | None = None) -> AsyncApiClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if recorded is not None:
            recorded.append(request)
        key = (request.method, request.url.path)
        if key not in routes:
            return httpx.Response(404, json={"detail": "not found"})
        status, body = routes[key]
        return httpx.Response(status, json=body)

    return AsyncApiClient(
        base_url="http://test/api",
        max_retries=0,
        transport=httpx.MockTransport(handler),
    )


class TestSnapshotReads:
    @pytest.mark.asyncio
    async def test_get_session_unwraps_envelope(self):
        routes = {
            ("GET", "/api/sessions/s1"): (
                200,
                {"session": {"sessionId": "s1", "updatedAt": 10, "agentMode": "plan"}},
            )
        }

        async with _api(routes) as client:
            session = await SessionApi(client).get_session("s1")

        assert session.session_id == "s1"
        assert session.updated_at == 10
        assert session.agent_mode == "plan"

    @pytest.mark.asyncio
    async def test_malformed_session_raises(self):
        routes = {("GET", "/api/sessions/s1"): (200, {"session": {"title": "x"}})}

        async with _api(routes) as client:
            with pytest.raises(PayloadValidationError):
                await SessionApi(client).get_session("s1")

    @pytest.mark.asyncio
    async def test_list_tasks_skips_malformed_items(self):
        routes = {
            ("GET", "/api/sessions/s1/tasks"): (
                200,
                {
                    "tasks": [
                        {"taskId": "t1", "status": "running", "createdAt": 1},
                        {"title": "no id"},
                        {"taskId": "t2", "status": "completed"},
                    ]
                },
            )
        }

        async with _api(routes) as client:
            tasks = await SessionApi(client).list_tasks("s1")

        assert [task.task_id for task in tasks] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_list_approvals_and_artifacts_accept_bare_lists(self):
        routes = {
            ("GET", "/api/sessions/s1/approvals"): (
                200,
                [{"approvalId": "a1", "riskTags": ["delete"], "createdAt": 5}],
            ),
            ("GET", "/api/sessions/s1/artifacts"): (
                200,
                {
                    "data": [
                        {
                            "artifactId": "art-1",
                            "artifact": {"type": "markdown", "content": "# hi"},
                            "updatedAt": 50,
                        }
                    ]
                },
            ),
        }

        async with _api(routes) as client:
            api = SessionApi(client)
            approvals = await api.list_approvals("s1")
            artifacts = await api.list_artifacts("s1")

        assert approvals[0].approval_id == "a1"
        assert approvals[0].status == ApprovalStatus.PENDING
        assert artifacts[0].artifact_id == "art-1"
        assert artifacts[0].updated_at == 50

    @pytest.mark.asyncio
    async def test_list_clarifications_and_workspace_sessions(self):
        routes = {
            ("GET", "/api/sessions/s1/clarifications"): (
                200,
                {
                    "clarifications": [
                        {"id": "q1", "question": "Which branch?", "options": ["main"]},
                        {"id": "q2"},
                    ]
                },
            ),
            ("GET", "/api/sessions/s1/workspace-sessions"): (
                200,
                {
                    "ok": True,
                    "workspaceSessions": [
                        {
                            "workspaceSessionId": "ws-1",
                            "sessionId": "s1",
                            "kind": "terminal",
                            "status": "active",
                            "updatedAt": 10,
                        }
                    ],
                },
            ),
        }

        async with _api(routes) as client:
            api = SessionApi(client)
            clarifications = await api.list_clarifications("s1")
            workspace_sessions = await api.list_workspace_sessions("s1")

        assert [c.id for c in clarifications] == ["q1"]
        assert clarifications[0].options == ["main"]
        assert workspace_sessions[0].workspace_session_id == "ws-1"
        assert workspace_sessions[0].updated_at == 10


class TestActions:
    @pytest.mark.asyncio
    async def test_resolve_approval_sends_status(self):
        recorded: list = []
        routes = {("PATCH", "/api/approvals/a1"): (200, {"approvalId": "a1"})}

        async with _api(routes, recorded) as client:
            await SessionApi(client).resolve_approval("a1", ApprovalStatus.REJECTED)

        assert json.loads(recorded[0].content) == {"status": "rejected"}

    @pytest.mark.asyncio
    async def test_resolve_approval_failure_becomes_action_error(self):
        routes = {("PATCH", "/api/approvals/a1"): (409, {"detail": "already resolved"})}

        async with _api(routes) as client:
            with pytest.raises(ActionError) as exc_info:
                await SessionApi(client).resolve_approval("a1", ApprovalStatus.APPROVED)

        assert exc_info.value.error_code == "ACTION-ResolveApprovalFailed"
        assert "already resolved" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_apply_artifact_returns_envelope(self):
        routes = {
            ("POST", "/api/artifacts/art-1/apply"): (
                200,
                {
                    "data": {
                        "artifactId": "art-1",
                        "artifact": {"type": "markdown", "content": "done"},
                        "status": "applied",
                        "version": 2,
                        "appliedAt": 99,
                    }
                },
            )
        }

        async with _api(routes) as client:
            envelope = await SessionApi(client).apply_artifact("art-1")

        assert envelope.status == ArtifactStatus.APPLIED
        assert envelope.version == 2
        assert MarkdownArtifact.model_validate(envelope.artifact).content == "done"

    @pytest.mark.asyncio
    async def test_revert_failure_becomes_action_error(self):
        async with _api({}) as client:
            with pytest.raises(ActionError) as exc_info:
                await SessionApi(client).revert_artifact("art-1")

        assert exc_info.value.error_code == "ACTION-RevertArtifactFailed"
        assert exc_info.value.details == {"artifact_id": "art-1"}

    @pytest.mark.asyncio
    async def test_malformed_action_response_becomes_action_error(self):
        routes = {("POST", "/api/artifacts/art-1/apply"): (200, {"data": {"status": "applied"}})}

        async with _api(routes) as client:
            with pytest.raises(ActionError):
                await SessionApi(client).apply_artifact("art-1")

    @pytest.mark.asyncio
    async def test_submit_clarification_body(self):
        recorded: list = []
        routes = {("POST", "/api/clarifications/q1/answer"): (200, {"ok": True})}

        async with _api(routes, recorded) as client:
            api = SessionApi(client)
            await api.submit_clarification("q1", "main", selected_option=1)
            await api.submit_clarification("q1", "dev")

        assert json.loads(recorded[0].content) == {"answer": "main", "selectedOption": 1}
        assert json.loads(recorded[1].content) == {"answer": "dev"}

    @pytest.mark.asyncio
    async def test_submit_clarification_failure_becomes_action_error(self):
        async with _api({}) as client:
            with pytest.raises(ActionError) as exc_info:
                await SessionApi(client).submit_clarification("q1", "main")

        assert exc_info.value.error_code == "ACTION-AnswerClarificationFailed"
        assert exc_info.value.details == {"request_id": "q1"}
