"""Artifact payload schemas.

Artifacts arrive as loosely-typed JSON both from the event stream and from
the artifacts snapshot endpoint. They are validated here; anything that does
not validate is dropped by the caller.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from tasksync.logging import get_logger
from tasksync.models.base import CamelModel

logger = get_logger(__name__)


class ArtifactStatus(str, Enum):
    """Application state of an artifact on the server."""

    PENDING = "pending"
    APPLIED = "applied"
    REVERTED = "reverted"


class PlanStep(CamelModel):
    """One step of an agent plan."""

    id: str
    label: str
    status: Literal["pending", "in_progress", "completed", "failed", "skipped"] = (
        "pending"
    )


class PlanArtifact(CamelModel):
    type: Literal["plan"] = "plan"
    steps: list[PlanStep]


class DiffArtifact(CamelModel):
    type: Literal["diff"] = "diff"
    file: str
    diff: str


class MarkdownArtifact(CamelModel):
    type: Literal["markdown"] = "markdown"
    content: str


ArtifactPayload = Annotated[
    Union[PlanArtifact, DiffArtifact, MarkdownArtifact], Field(discriminator="type")
]

_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(ArtifactPayload)
_PLAN_STEPS_ADAPTER: TypeAdapter = TypeAdapter(list[PlanStep])


class ArtifactRecord(CamelModel):
    """An artifact as held in the task graph.

    Attributes:
        payload: Validated typed content
        updated_at: Logical time (epoch ms) used for last-write-wins
        task_id: Owning task
        version: Server-side version counter
        status: Application state
        applied_at: When the artifact was last applied (epoch ms)
    """

    payload: ArtifactPayload
    updated_at: Optional[int] = None
    task_id: Optional[str] = None
    version: Optional[int] = None
    status: Optional[ArtifactStatus] = None
    applied_at: Optional[int] = None

    def is_superseded_by(self, updated_at: Optional[int]) -> bool:
        """True if an update stamped ``updated_at`` should replace this record.

        An incoming update wins only when it is strictly newer. A record
        without a logical time can always be replaced.
        """
        if self.updated_at is None:
            return True
        if updated_at is None:
            return False
        return updated_at > self.updated_at


def parse_artifact_payload(data: Any) -> Optional[Union[PlanArtifact, DiffArtifact, MarkdownArtifact]]:
    """Validate a raw artifact payload, returning None when it is invalid."""
    try:
        return _PAYLOAD_ADAPTER.validate_python(data)
    except ValidationError as e:
        logger.debug(f"Dropping invalid artifact payload: {e.error_count()} errors")
        return None


def parse_plan_steps(data: Any) -> Optional[list[PlanStep]]:
    """Validate a raw list of plan steps, returning None when it is invalid."""
    try:
        return _PLAN_STEPS_ADAPTER.validate_python(data)
    except ValidationError as e:
        logger.debug(f"Dropping invalid plan: {e.error_count()} errors")
        return None
