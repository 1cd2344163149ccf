"""Data models for the task graph, artifacts and REST snapshots."""

from tasksync.models.artifacts import (
    ArtifactPayload,
    ArtifactRecord,
    ArtifactStatus,
    DiffArtifact,
    MarkdownArtifact,
    PlanArtifact,
    PlanStep,
    parse_artifact_payload,
    parse_plan_steps,
)
from tasksync.models.graph import (
    MAX_WORKSPACE_EVENTS,
    AgentMode,
    CheckpointNode,
    MessageUsage,
    PlanUpdateNode,
    PolicyDecision,
    PolicyDecisionNode,
    RiskLevel,
    TaskGraph,
    TaskNode,
    TaskStatus,
    TaskStatusNode,
    ThinkingNode,
    TokenUsage,
    ToolCallNode,
    ToolOutputNode,
    TurnMarkerNode,
    append_node,
    filter_risk_tags,
    is_placeholder_session,
    map_risk_level,
    map_task_status,
    upsert_node,
)
from tasksync.models.snapshots import (
    ApprovalRecord,
    ApprovalStatus,
    ArtifactEnvelope,
    ClarificationRequest,
    SessionRecord,
    TaskRecord,
    WorkspaceEvent,
    WorkspaceSession,
    WorkspaceSessionStatus,
)

__all__ = [
    "MAX_WORKSPACE_EVENTS",
    "AgentMode",
    "ApprovalRecord",
    "ApprovalStatus",
    "ArtifactEnvelope",
    "ArtifactPayload",
    "ArtifactRecord",
    "ArtifactStatus",
    "CheckpointNode",
    "ClarificationRequest",
    "DiffArtifact",
    "MarkdownArtifact",
    "MessageUsage",
    "PlanArtifact",
    "PlanStep",
    "PlanUpdateNode",
    "PolicyDecision",
    "PolicyDecisionNode",
    "RiskLevel",
    "SessionRecord",
    "TaskGraph",
    "TaskNode",
    "TaskRecord",
    "TaskStatus",
    "TaskStatusNode",
    "ThinkingNode",
    "TokenUsage",
    "ToolCallNode",
    "ToolOutputNode",
    "TurnMarkerNode",
    "WorkspaceEvent",
    "WorkspaceSession",
    "WorkspaceSessionStatus",
    "append_node",
    "filter_risk_tags",
    "is_placeholder_session",
    "map_risk_level",
    "map_task_status",
    "parse_artifact_payload",
    "parse_plan_steps",
    "upsert_node",
]
