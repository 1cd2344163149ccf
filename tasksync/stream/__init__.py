"""Event stream transport, liveness tracking and reconnection."""

from tasksync.stream.frames import (
    HEARTBEAT_EVENT,
    FrameParser,
    RawFrame,
    StreamEvent,
    decode_frame,
    parse_frame,
)
from tasksync.stream.reconnect import ConnectionState, ReconnectController
from tasksync.stream.transport import LivenessMonitor, StreamHandle, StreamTransport

__all__ = [
    "HEARTBEAT_EVENT",
    "ConnectionState",
    "FrameParser",
    "LivenessMonitor",
    "RawFrame",
    "ReconnectController",
    "StreamEvent",
    "StreamHandle",
    "StreamTransport",
    "decode_frame",
    "parse_frame",
]
