"""Stream normalizers for engine CLI output."""

from .base import StreamNormalizer
from .events import (
    AssistantText,
    CheckpointMarker,
    DisplayEvent,
    ErrorLine,
    EventChannel,
    OpaqueLine,
    StatusLine,
    StreamSinks,
    ThinkingText,
    ToolResult,
    ToolStarted,
    UsageSnapshot,
)
from .opencode import OpenCodeNormalizer
from .print_mode import PrintModeNormalizer
from .usage import extract_usage
from .wire_mode import WireModeNormalizer

__all__ = [
    "StreamNormalizer",
    "PrintModeNormalizer",
    "WireModeNormalizer",
    "OpenCodeNormalizer",
    "extract_usage",
    "AssistantText",
    "ThinkingText",
    "ToolStarted",
    "ToolResult",
    "StatusLine",
    "ErrorLine",
    "CheckpointMarker",
    "OpaqueLine",
    "DisplayEvent",
    "UsageSnapshot",
    "StreamSinks",
    "EventChannel",
]
