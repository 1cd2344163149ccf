"""User actions on approvals, artifacts and clarifications.

Approvals are updated optimistically before the remote call. Failures are
not rolled back locally; a snapshot refresh restores the server's view.
A clarification leaves the graph only once the server accepted the answer.
"""

from typing import Optional

from tasksync.client import SessionApi
from tasksync.errors import ActionError
from tasksync.logging import get_logger
from tasksync.models import (
    ApprovalStatus,
    ArtifactEnvelope,
    ArtifactRecord,
    TaskGraph,
    TaskStatus,
    parse_artifact_payload,
)
from tasksync.reducer import remove_clarification
from tasksync.sync.reconciler import SnapshotReconciler
from tasksync.sync.store import GraphStore

logger = get_logger(__name__)


def _clear_pending(graph: TaskGraph, approval_id: str, resume: bool) -> TaskGraph:
    changes: dict = {}
    if graph.pending_approval_id == approval_id:
        changes["pending_approval_id"] = None
    if resume and graph.status == TaskStatus.AWAITING_APPROVAL:
        changes["status"] = TaskStatus.RUNNING
    return graph.evolve(**changes)


def _apply_artifact_record(
    graph: TaskGraph, artifact_id: str, envelope: ArtifactEnvelope
) -> TaskGraph:
    """Overwrite the local artifact with the server's authoritative record."""
    existing = graph.artifacts.get(artifact_id)
    payload = parse_artifact_payload(envelope.artifact)
    if payload is None:
        if existing is None:
            return graph
        payload = existing.payload

    update = {
        "payload": payload,
        "status": envelope.status,
        "version": envelope.version,
        "applied_at": envelope.applied_at,
        "updated_at": envelope.updated_at,
    }
    if envelope.task_id is not None:
        update["task_id"] = envelope.task_id

    if existing is not None:
        record = existing.model_copy(update=update)
    else:
        record = ArtifactRecord(**update)
    return graph.evolve(artifacts={**graph.artifacts, artifact_id: record})


class ActionGateway:
    """Approve/reject approvals, apply/revert artifacts, answer clarifications."""

    def __init__(
        self, api: SessionApi, store: GraphStore, reconciler: SnapshotReconciler
    ) -> None:
        self.api = api
        self.store = store
        self.reconciler = reconciler

    async def approve_approval(self, approval_id: str) -> bool:
        self.store.update(lambda g: _clear_pending(g, approval_id, resume=True))
        return await self._resolve(approval_id, ApprovalStatus.APPROVED)

    async def reject_approval(self, approval_id: str) -> bool:
        self.store.update(lambda g: _clear_pending(g, approval_id, resume=False))
        return await self._resolve(approval_id, ApprovalStatus.REJECTED)

    async def _resolve(self, approval_id: str, status: ApprovalStatus) -> bool:
        try:
            await self.api.resolve_approval(approval_id, status)
        except ActionError as e:
            logger.error(f"{e.message}; reconciling")
            await self.reconciler.refresh()
            return False
        logger.info(f"Approval {approval_id} {status.value}")
        return True

    async def apply_artifact(self, artifact_id: str) -> bool:
        return await self._artifact_action(artifact_id, "apply")

    async def revert_artifact(self, artifact_id: str) -> bool:
        return await self._artifact_action(artifact_id, "revert")

    async def _artifact_action(self, artifact_id: str, action: str) -> bool:
        try:
            if action == "apply":
                envelope = await self.api.apply_artifact(artifact_id)
            else:
                envelope = await self.api.revert_artifact(artifact_id)
        except ActionError as e:
            logger.error(f"{e.message}; reconciling")
            await self.reconciler.refresh()
            return False

        self.store.update(lambda g: _apply_artifact_record(g, artifact_id, envelope))
        logger.info(f"Artifact {artifact_id} {action} succeeded")
        return True

    async def answer_clarification(
        self, request_id: str, answer: str, selected_option: Optional[int] = None
    ) -> bool:
        """Submit an answer; a blank answer is not sent and returns False."""
        answer = answer.strip()
        if not answer:
            return False
        try:
            await self.api.submit_clarification(request_id, answer, selected_option)
        except ActionError as e:
            logger.error(f"{e.message}; reconciling")
            await self.reconciler.refresh()
            return False

        self.store.update(
            lambda g: g.evolve(
                clarifications=remove_clarification(g.clarifications, request_id)
            )
        )
        logger.info(f"Clarification {request_id} answered")
        return True
