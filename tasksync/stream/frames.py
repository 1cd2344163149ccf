"""Event stream frame parsing.

Frames are separated by a blank line and carry three ``field: value`` lines:

    id: 42
    event: agent.think
    data: {"content": "..."}

A frame missing any of the three fields is discarded. ``data`` is JSON.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional

from tasksync.errors import FrameError
from tasksync.logging import get_logger

logger = get_logger(__name__)

HEARTBEAT_EVENT = "system.heartbeat"


@dataclass(frozen=True)
class RawFrame:
    id: str
    event: str
    data: str


@dataclass(frozen=True)
class StreamEvent:
    """One decoded stream event."""

    id: str
    type: str
    data: Any

    @property
    def is_heartbeat(self) -> bool:
        return self.type == HEARTBEAT_EVENT


def parse_frame(block: str) -> Optional[RawFrame]:
    """Parse one frame block; None if any of id/event/data is missing."""
    frame_id = ""
    event_type = ""
    data_lines: list[str] = []

    for line in block.split("\n"):
        if line.startswith("id:"):
            frame_id = line[3:].removeprefix(" ")
        elif line.startswith("event:"):
            event_type = line[6:].removeprefix(" ")
        elif line.startswith("data:"):
            data_lines.append(line[5:].removeprefix(" "))

    data = "\n".join(data_lines)
    if frame_id and event_type and data:
        return RawFrame(id=frame_id, event=event_type, data=data)
    return None


def decode_frame(frame: RawFrame) -> StreamEvent:
    """Decode a frame's JSON data.

    Raises:
        FrameError: The data field is not valid JSON
    """
    try:
        payload = json.loads(frame.data)
    except ValueError as e:
        raise FrameError(
            message=f"Undecodable data in frame {frame.id}",
            error_code="STREAM-InvalidFrameData",
            details={"frame_id": frame.id, "event": frame.event, "error": str(e)},
        ) from e
    return StreamEvent(id=frame.id, type=frame.event, data=payload)


class FrameParser:
    """Incremental parser fed with decoded text chunks.

    Keeps the trailing partial frame buffered until its terminating blank
    line arrives.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[RawFrame]:
        """Add a chunk and return every frame completed by it."""
        self._buffer += chunk.replace("\r\n", "\n").replace("\r", "\n")
        *blocks, self._buffer = self._buffer.split("\n\n")

        frames: list[RawFrame] = []
        for block in blocks:
            frame = parse_frame(block)
            if frame is None:
                if block.strip():
                    logger.debug(f"Discarding incomplete frame: {block[:80]!r}")
                continue
            frames.append(frame)
        return frames

    @property
    def pending(self) -> str:
        return self._buffer
