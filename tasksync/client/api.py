"""Typed facade over the session REST endpoints.

Endpoints (relative to the configured base URL):
    GET   /sessions/{id}
    GET   /sessions/{id}/tasks
    GET   /sessions/{id}/approvals
    GET   /sessions/{id}/artifacts
    PATCH /approvals/{id}            body: {"status": "approved" | "rejected"}
    POST  /artifacts/{id}/apply
    POST  /artifacts/{id}/revert
    GET   /sessions/{id}/clarifications
    POST  /clarifications/{id}/answer  body: {"answer": str, "selectedOption"?: int}
    GET   /sessions/{id}/workspace-sessions
"""

from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from tasksync.client.async_client import AsyncApiClient
from tasksync.client.core import unwrap_item, unwrap_list
from tasksync.client.errors import ClientError
from tasksync.errors import ActionError, PayloadValidationError
from tasksync.logging import get_logger
from tasksync.models import (
    ApprovalRecord,
    ApprovalStatus,
    ArtifactEnvelope,
    ClarificationRequest,
    SessionRecord,
    TaskRecord,
    WorkspaceSession,
)

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse_items(items: list[Any], model: type[M], kind: str) -> list[M]:
    """Validate list items, skipping (and logging) the malformed ones."""
    parsed: list[M] = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {kind} record: {e.error_count()} errors")
    return parsed


def _parse_item(data: Any, model: type[M], kind: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PayloadValidationError(
            message=f"Malformed {kind} record",
            error_code="PAYLOAD-InvalidRecord",
            details={"kind": kind, "errors": e.errors(include_url=False)},
        ) from e


class SessionApi:
    """Snapshot reads and remote actions for agent sessions."""

    def __init__(self, client: AsyncApiClient) -> None:
        self.client = client

    async def get_session(self, session_id: str) -> SessionRecord:
        data = await self.client.get(f"/sessions/{session_id}")
        return _parse_item(unwrap_item(data, "session"), SessionRecord, "session")

    async def list_tasks(self, session_id: str) -> list[TaskRecord]:
        data = await self.client.get(f"/sessions/{session_id}/tasks")
        return _parse_items(unwrap_list(data, "tasks"), TaskRecord, "task")

    async def list_approvals(self, session_id: str) -> list[ApprovalRecord]:
        data = await self.client.get(f"/sessions/{session_id}/approvals")
        return _parse_items(unwrap_list(data, "approvals"), ApprovalRecord, "approval")

    async def list_artifacts(self, session_id: str) -> list[ArtifactEnvelope]:
        data = await self.client.get(f"/sessions/{session_id}/artifacts")
        return _parse_items(
            unwrap_list(data, "artifacts"), ArtifactEnvelope, "artifact"
        )

    async def list_clarifications(self, session_id: str) -> list[ClarificationRequest]:
        data = await self.client.get(f"/sessions/{session_id}/clarifications")
        return _parse_items(
            unwrap_list(data, "clarifications"), ClarificationRequest, "clarification"
        )

    async def list_workspace_sessions(self, session_id: str) -> list[WorkspaceSession]:
        data = await self.client.get(f"/sessions/{session_id}/workspace-sessions")
        return _parse_items(
            unwrap_list(data, "workspaceSessions"), WorkspaceSession, "workspace session"
        )

    async def resolve_approval(
        self, approval_id: str, status: ApprovalStatus
    ) -> dict[str, Any]:
        """Approve or reject an approval.

        Raises:
            ActionError: The remote call failed for any reason
        """
        try:
            return await self.client.patch(
                f"/approvals/{approval_id}", json={"status": status.value}
            )
        except ClientError as e:
            raise ActionError(
                message=f"Failed to resolve approval {approval_id}: {e.message}",
                error_code="ACTION-ResolveApprovalFailed",
                details={"approval_id": approval_id, "status": status.value},
            ) from e

    async def apply_artifact(self, artifact_id: str) -> ArtifactEnvelope:
        """Apply an artifact and return the authoritative record."""
        return await self._artifact_action(artifact_id, "apply")

    async def revert_artifact(self, artifact_id: str) -> ArtifactEnvelope:
        """Revert an artifact and return the authoritative record."""
        return await self._artifact_action(artifact_id, "revert")

    async def _artifact_action(self, artifact_id: str, action: str) -> ArtifactEnvelope:
        try:
            data = await self.client.post(f"/artifacts/{artifact_id}/{action}")
            return _parse_item(unwrap_item(data, "data"), ArtifactEnvelope, "artifact")
        except (ClientError, PayloadValidationError) as e:
            raise ActionError(
                message=f"Failed to {action} artifact {artifact_id}: {e}",
                error_code=f"ACTION-{action.capitalize()}ArtifactFailed",
                details={"artifact_id": artifact_id},
            ) from e

    async def submit_clarification(
        self, request_id: str, answer: str, selected_option: Optional[int] = None
    ) -> dict[str, Any]:
        """Answer a clarification request.

        Raises:
            ActionError: The remote call failed for any reason
        """
        body: dict[str, Any] = {"answer": answer}
        if selected_option is not None:
            body["selectedOption"] = selected_option
        try:
            return await self.client.post(
                f"/clarifications/{request_id}/answer", json=body
            )
        except ClientError as e:
            raise ActionError(
                message=f"Failed to answer clarification {request_id}: {e.message}",
                error_code="ACTION-AnswerClarificationFailed",
                details={"request_id": request_id},
            ) from e
