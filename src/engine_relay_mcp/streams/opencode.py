"""OpenCode ``run --format json`` event stream.

Besides text, tool and step events, OpenCode reports pending permission
prompts. Since the driver cannot answer them on this channel, the first pending
permission is recorded, the child is asked to stop, and the engine raises the
recorded PermissionRequiredError once the process has settled.
"""

import json
import time
from typing import Any, Optional

from ..errors import PermissionRequest, PermissionRequiredError
from ..executor.utils import strip_ansi, truncate
from .base import StreamNormalizer
from .events import ErrorLine, StatusLine, ToolResult
from .records import (
    OpenCodeError,
    OpenCodeEvent,
    OpenCodePermission,
    OpenCodeStep,
    OpenCodeText,
    OpenCodeToolUse,
    PermissionPayload,
    StepPart,
    ToolPart,
    UnknownOpenCodeEvent,
    decode_opencode_event,
)
from .usage import decode_count

ENGINE_ID = "opencode"

# Child gets less time to exit here than on timeout: it is idle, waiting on us
PERMISSION_KILL_GRACE = 0.5

TOOL_PREVIEW_LIMIT = 100

RESOLVED_PERMISSION_STATES = frozenset({
    "approved", "allow", "allowed", "granted", "denied", "rejected", "resolved", "dismissed",
})


def is_permission_pending(payload: PermissionPayload) -> bool:
    metadata = payload.metadata or {}
    for key in ("status", "state", "resolution"):
        status = metadata.get(key)
        if isinstance(status, str) and status:
            return status.lower() not in RESOLVED_PERMISSION_STATES
    return True


def _step_summary(event_type: str, part: Optional[StepPart]) -> str:
    if event_type == "step_start":
        return "OpenCode started a new step"

    segments = ["OpenCode finished a step"]
    if part is not None and part.reason:
        segments.append(f"Reason: {part.reason}")
    tokens = part.tokens if part is not None else None
    if tokens:
        cache = tokens.get("cache") if isinstance(tokens.get("cache"), dict) else {}
        cached = (decode_count(cache.get("read")) or 0) + (decode_count(cache.get("write")) or 0)
        tokens_in = decode_count(tokens.get("input")) or 0
        tokens_out = decode_count(tokens.get("output")) or 0
        summary = f"Tokens {tokens_in}in/{tokens_out}out"
        if cached > 0:
            summary += f" ({cached} cached)"
        segments.append(summary)
    return " | ".join(segments)


class OpenCodeNormalizer(StreamNormalizer):
    source = "OpenCode"

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("dedupe_transcript", True)
        super().__init__(*args, **kwargs)
        self.pending_permission: Optional[PermissionRequiredError] = None
        # monotonic time of the last output on either stream
        self.last_activity = time.monotonic()

    def feed_stdout(self, chunk: str) -> None:
        self.last_activity = time.monotonic()
        super().feed_stdout(chunk)

    def feed_stderr(self, chunk: str) -> None:
        self.last_activity = time.monotonic()
        super().feed_stderr(chunk)

    def decode(self, data: dict[str, Any]) -> OpenCodeEvent:
        return decode_opencode_event(data)

    def _clean(self, text: str) -> str:
        return strip_ansi(text) if self.plain_logs else text

    def dispatch(self, event: OpenCodeEvent) -> None:
        if isinstance(event, OpenCodeText):
            if event.part is not None and event.part.text:
                self.emit_text(self._clean(event.part.text))
        elif isinstance(event, OpenCodeToolUse):
            self.emit(self._tool_result(event.part))
        elif isinstance(event, OpenCodeStep):
            self.emit(StatusLine(_step_summary(event.type, event.part)))
            if event.type == "step_finish" and event.part is not None:
                self.emit_usage(event.part.payload())
        elif isinstance(event, OpenCodeError):
            self._on_error(event)
        elif isinstance(event, OpenCodePermission):
            self._on_permission(event)
        elif isinstance(event, UnknownOpenCodeEvent):
            self._logger.debug(f"[{self.source}] Ignoring event type={event.type!r}")

    def _tool_result(self, part: Optional[ToolPart]) -> ToolResult:
        tool = (part.tool if part is not None else None) or "tool"
        state = part.state if part is not None else None
        if state is None:
            return ToolResult(tool)

        if tool == "bash":
            if isinstance(state.output, str):
                output = state.output
            elif state.output:
                output = json.dumps(state.output)
            else:
                output = ""
            return ToolResult(tool, preview=self._clean(output.strip()))

        preview = ""
        if state.title and state.title.strip():
            preview = state.title.strip()
        elif isinstance(state.output, str) and state.output.strip():
            preview = state.output.strip()
        elif state.input:
            preview = json.dumps(state.input)
        return ToolResult(tool, preview=truncate(self._clean(preview), TOOL_PREVIEW_LIMIT))

    def _on_error(self, event: OpenCodeError) -> None:
        error = event.error or event.part
        message = "OpenCode reported an unknown error"
        if error is not None:
            if error.data is not None and error.data.message:
                message = error.data.message
            elif error.message:
                message = error.message
            elif error.name:
                message = error.name
        self.emit(ErrorLine(self._clean(message), source=self.source))

    def _on_permission(self, event: OpenCodePermission) -> None:
        if self.pending_permission is not None:
            return
        payload = event.extract()
        if payload is None or not is_permission_pending(payload):
            return

        metadata = payload.metadata or {}
        path = metadata.get("path") or metadata.get("target")
        pattern = tuple(payload.pattern) if isinstance(payload.pattern, list) else payload.pattern
        message = payload.title or payload.type or payload.id or "OpenCode permission required"

        self.pending_permission = PermissionRequiredError(message, PermissionRequest(
            engine=ENGINE_ID,
            capability=payload.type,
            pattern=pattern,
            path=path if isinstance(path, str) else None,
            metadata=metadata,
            id=payload.id,
            title=payload.title,
            raw=event.payload(),
        ))
        self._logger.info(f"[{self.source}] 🔒 Permission required: {message}")
        self.emit(StatusLine(f"OpenCode requested approval: {message}"))

        if self.handle is not None:
            self.handle.request_termination(PERMISSION_KILL_GRACE)
