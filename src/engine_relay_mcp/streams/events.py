"""Display events and telemetry emitted by stream normalizers."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .markers import apply_prefix, format_command, format_result, format_status, format_thinking


@dataclass
class AssistantText:
    text: str
    prefix: Optional[str] = None

    def render(self) -> str:
        return apply_prefix(self.text, self.prefix)


@dataclass
class ThinkingText:
    text: str
    prefix: Optional[str] = None

    def render(self) -> str:
        return apply_prefix(format_thinking(self.text), self.prefix)


@dataclass
class ToolStarted:
    name: str
    preview: str = ""
    prefix: Optional[str] = None

    def render(self) -> str:
        message = format_command(self.name, "started")
        if self.preview:
            message += f"\n{format_result(self.preview)}"
        return apply_prefix(message, self.prefix)


@dataclass
class ToolResult:
    name: str
    is_error: bool = False
    preview: str = ""
    prefix: Optional[str] = None

    def render(self) -> str:
        message = format_command(self.name, "error" if self.is_error else "success")
        if self.preview:
            message += f"\n{format_result(self.preview, self.is_error)}"
        return apply_prefix(message, self.prefix)


@dataclass
class StatusLine:
    message: str
    prefix: Optional[str] = None

    def render(self) -> str:
        return apply_prefix(format_status(self.message), self.prefix)


@dataclass
class ErrorLine:
    """Engine-reported error, routed to the error sink."""

    message: str
    source: str = "Agent"
    prefix: Optional[str] = None

    def render(self) -> str:
        message = f"{format_command(f'{self.source} Error', 'error')}\n{format_result(self.message, True)}"
        return apply_prefix(message, self.prefix)


@dataclass
class CheckpointMarker:
    checkpoint_id: Optional[str] = None
    prefix: Optional[str] = None

    @property
    def label(self) -> str:
        return f"Checkpoint {self.checkpoint_id}" if self.checkpoint_id else "Checkpoint reached"

    def render(self) -> str:
        return apply_prefix(format_status(self.label), self.prefix)


@dataclass
class OpaqueLine:
    """A line that was not a recognizable record, forwarded verbatim."""

    text: str
    prefix: Optional[str] = None

    def render(self) -> str:
        return apply_prefix(self.text, self.prefix)


DisplayEvent = Union[
    AssistantText,
    ThinkingText,
    ToolStarted,
    ToolResult,
    StatusLine,
    ErrorLine,
    CheckpointMarker,
    OpaqueLine,
]


@dataclass
class UsageSnapshot:
    """Token usage reported by one telemetry record."""

    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    cached: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.tokens_in is None and self.tokens_out is None and self.cached is None


@dataclass
class StreamSinks:
    """Caller-supplied callbacks. Any of them may be left unset."""

    on_data: Optional[Callable[[str], None]] = None
    on_error_data: Optional[Callable[[str], None]] = None
    on_usage: Optional[Callable[[UsageSnapshot], None]] = None
    on_event: Optional[Callable[[DisplayEvent], None]] = None

    def data(self, text: str) -> None:
        if self.on_data:
            self.on_data(text)

    def error(self, text: str) -> None:
        if self.on_error_data:
            self.on_error_data(text)

    def usage(self, snapshot: UsageSnapshot) -> None:
        if self.on_usage:
            self.on_usage(snapshot)

    def event(self, event: DisplayEvent) -> None:
        if self.on_event:
            self.on_event(event)


class EventChannel:
    """Push-based channel turning on_event callbacks into an async iterator.

    The queue is unbounded: a child producing faster than the consumer reads
    grows memory instead of blocking the child.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def publish(self, event: DisplayEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> DisplayEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            # Keep later readers from blocking
            self._queue.put_nowait(self._CLOSED)
            raise StopAsyncIteration
        return item
