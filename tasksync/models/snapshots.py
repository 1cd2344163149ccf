"""REST snapshot records returned by the session API.

Timestamps are epoch milliseconds, as served by the API.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import Field

from tasksync.models.artifacts import ArtifactStatus
from tasksync.models.base import CamelModel


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SessionRecord(CamelModel):
    session_id: str
    updated_at: int = 0
    agent_mode: Optional[str] = None
    title: Optional[str] = None


class TaskRecord(CamelModel):
    task_id: str
    title: str = ""
    prompt: str = ""
    status: str
    created_at: int = 0
    updated_at: int = 0
    model_id: Optional[str] = None
    provider_id: Optional[str] = None
    fallback_notice: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ApprovalRecord(CamelModel):
    approval_id: str
    session_id: Optional[str] = None
    task_id: Optional[str] = None
    action: str = "tool"
    risk_tags: list[str] = Field(default_factory=list)
    reason: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: int = 0
    resolved_at: Optional[int] = None


class ArtifactEnvelope(CamelModel):
    """Server-side artifact record; ``artifact`` is the unvalidated payload."""

    artifact_id: str
    artifact: Any = None
    task_id: Optional[str] = None
    updated_at: Optional[int] = None
    version: Optional[int] = None
    status: Optional[ArtifactStatus] = None
    applied_at: Optional[int] = None


class ClarificationRequest(CamelModel):
    """A question the agent is waiting on; ``options`` are suggested answers."""

    id: str
    question: str
    options: list[str] = Field(default_factory=list)
    context: Optional[str] = None
    task_id: Optional[str] = None
    created_at: Optional[int] = None


class WorkspaceSessionStatus(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class WorkspaceSession(CamelModel):
    """A terminal/browser/file workspace attached to an agent session."""

    workspace_session_id: str
    session_id: str
    kind: str
    status: str
    owner_agent_id: Optional[str] = None
    controller: Optional[str] = None
    controller_id: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0
    ended_at: Optional[int] = None


class WorkspaceEvent(CamelModel):
    """One entry of a workspace session's activity log."""

    workspace_session_id: str
    sequence: int
    timestamp: int
    kind: str
    payload: dict[str, Any]
    source: Optional[str] = None
