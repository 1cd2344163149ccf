"""Task graph models.

A ``TaskGraph`` is the reconstructed state of one session. Graphs are treated
as immutable values: transforms return a new graph (``model_copy``) or the
very same object when nothing changed.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field

from tasksync.models.artifacts import ArtifactRecord, PlanArtifact
from tasksync.models.base import CamelModel
from tasksync.models.snapshots import (
    ClarificationRequest,
    WorkspaceEvent,
    WorkspaceSession,
)


class TaskStatus(str, Enum):
    """Overall status of a session's task activity."""

    PLANNING = "planning"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgentMode(str, Enum):
    PLAN = "plan"
    BUILD = "build"


# Raw server task status -> graph status. Unlisted values leave status alone.
TASK_STATUS_MAP: dict[str, TaskStatus] = {
    "queued": TaskStatus.PLANNING,
    "planning": TaskStatus.PLANNING,
    "ready": TaskStatus.PLANNING,
    "running": TaskStatus.RUNNING,
    "awaiting_confirmation": TaskStatus.AWAITING_APPROVAL,
    "awaiting_approval": TaskStatus.AWAITING_APPROVAL,
    "completed": TaskStatus.COMPLETED,
    "failed": TaskStatus.FAILED,
    "cancelled": TaskStatus.FAILED,
}

MAX_WORKSPACE_EVENTS = 200

PLACEHOLDER_SESSION_IDS = frozenset({"", "undefined", "null"})

RISK_TAGS = frozenset({"delete", "overwrite", "network", "connector", "batch"})
HIGH_RISK_TAGS = frozenset({"delete", "overwrite"})


def is_placeholder_session(session_id: Optional[str]) -> bool:
    """True for ids that do not name a real session."""
    return session_id is None or session_id.strip() in PLACEHOLDER_SESSION_IDS


def map_task_status(status: Optional[str]) -> Optional[TaskStatus]:
    """Map a raw server task status onto ``TaskStatus`` (None if unknown)."""
    if status is None:
        return None
    return TASK_STATUS_MAP.get(status)


def filter_risk_tags(value: Any) -> list[str]:
    """Keep only known risk tags, preserving order."""
    if not isinstance(value, list):
        return []
    return [tag for tag in value if isinstance(tag, str) and tag in RISK_TAGS]


def map_risk_level(risk_tags: list[str]) -> RiskLevel:
    """Derive a risk level: destructive tags are HIGH, any other tag MEDIUM."""
    if any(tag in HIGH_RISK_TAGS for tag in risk_tags):
        return RiskLevel.HIGH
    if risk_tags:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class _NodeBase(CamelModel):
    id: str
    timestamp: str
    task_id: Optional[str] = None
    # Originating stream event id, used to rebuild dedup state from the cache
    event_id: Optional[str] = None


class ThinkingNode(_NodeBase):
    type: Literal["thinking"] = "thinking"
    content: str


class ToolCallNode(_NodeBase):
    type: Literal["tool_call"] = "tool_call"
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    risk_level: Optional[RiskLevel] = None
    requires_approval: Optional[bool] = None
    approval_id: Optional[str] = None
    activity: Optional[str] = None
    activity_label: Optional[str] = None


class ToolOutputNode(_NodeBase):
    type: Literal["tool_output"] = "tool_output"
    call_id: str
    tool_name: Optional[str] = None
    output: Any = None
    is_error: Optional[bool] = None
    error_code: Optional[str] = None
    duration_ms: Optional[float] = None
    attempts: Optional[int] = None
    activity: Optional[str] = None
    activity_label: Optional[str] = None


class PlanUpdateNode(_NodeBase):
    type: Literal["plan_update"] = "plan_update"
    plan: PlanArtifact


class TaskStatusNode(_NodeBase):
    type: Literal["task_status"] = "task_status"
    title: str
    prompt: Optional[str] = None
    status: str
    mapped_status: Optional[TaskStatus] = None
    model_id: Optional[str] = None
    provider_id: Optional[str] = None
    fallback_notice: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class TurnMarkerNode(_NodeBase):
    type: Literal["turn_marker"] = "turn_marker"
    turn: int
    phase: Literal["start", "end"]


class PolicyDecision(str, Enum):
    ALLOW = "allow"
    ALLOW_WITH_CONFIRM = "allow_with_confirm"
    DENY = "deny"


class PolicyDecisionNode(_NodeBase):
    type: Literal["policy_decision"] = "policy_decision"
    tool_name: Optional[str] = None
    decision: Optional[PolicyDecision] = None
    policy_rule_id: Optional[str] = None
    policy_action: Optional[str] = None
    risk_tags: list[str] = Field(default_factory=list)
    risk_score: Optional[float] = None
    reason: Optional[str] = None


class CheckpointNode(_NodeBase):
    type: Literal["checkpoint"] = "checkpoint"
    checkpoint_id: str
    action: Literal["created", "restored"]
    status: Optional[str] = None
    current_step: int = 0


TaskNode = Annotated[
    Union[
        ThinkingNode,
        ToolCallNode,
        ToolOutputNode,
        PlanUpdateNode,
        TaskStatusNode,
        TurnMarkerNode,
        PolicyDecisionNode,
        CheckpointNode,
    ],
    Field(discriminator="type"),
]


class TokenUsage(CamelModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int


class MessageUsage(TokenUsage):
    """Token and cost usage attributed to one message."""

    context_window: Optional[int] = None
    utilization: Optional[float] = None
    model_id: Optional[str] = None
    provider_id: Optional[str] = None
    cost_usd: Optional[float] = None


class TaskGraph(CamelModel):
    """Reconstructed in-memory state of one session's task activity."""

    session_id: str
    status: TaskStatus = TaskStatus.PLANNING
    nodes: list[TaskNode] = Field(default_factory=list)
    artifacts: dict[str, ArtifactRecord] = Field(default_factory=dict)
    pending_approval_id: Optional[str] = None
    message_usage: dict[str, MessageUsage] = Field(default_factory=dict)
    agent_mode: AgentMode = AgentMode.BUILD
    usage: Optional[TokenUsage] = None
    clarifications: list[ClarificationRequest] = Field(default_factory=list)
    workspace_sessions: dict[str, WorkspaceSession] = Field(default_factory=dict)
    # Per workspace session, capped at MAX_WORKSPACE_EVENTS
    workspace_events: dict[str, list[WorkspaceEvent]] = Field(default_factory=dict)

    @classmethod
    def empty(cls, session_id: str) -> "TaskGraph":
        return cls(session_id=session_id)

    def find_node(self, node_id: str) -> Optional[Any]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def task_nodes(self) -> list[TaskStatusNode]:
        return [node for node in self.nodes if isinstance(node, TaskStatusNode)]

    def evolve(self, **changes: Any) -> "TaskGraph":
        """Copy with ``changes`` applied, or ``self`` when nothing differs."""
        if all(
            getattr(self, name) is value or getattr(self, name) == value
            for name, value in changes.items()
        ):
            return self
        return self.model_copy(update=changes)


def append_node(nodes: list, node: Any) -> list:
    """Append ``node`` unless a node with the same id exists.

    Returns the input list unchanged (same object) when the id is present.
    """
    if any(existing.id == node.id for existing in nodes):
        return nodes
    return [*nodes, node]


def upsert_node(nodes: list, node: Any) -> list:
    """Replace the node with the same id in place, or append it."""
    for index, existing in enumerate(nodes):
        if existing.id == node.id:
            if existing is node:
                return nodes
            updated = list(nodes)
            updated[index] = node
            return updated
    return [*nodes, node]
