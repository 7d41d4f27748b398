"""Wire mode: bidirectional JSON-RPC over the child's stdin/stdout.

The driver sends a single ``run`` request shortly after spawn. The child then
streams ``event`` notifications and may send ``request`` messages asking for a
decision, which are approved automatically.
"""

import asyncio
import json
import time
from typing import Any, Optional

from ..errors import MalformedRecordError
from ..executor.process import ProcessHandle
from ..executor.utils import truncate
from .base import StreamNormalizer
from .events import ErrorLine, OpaqueLine, StatusLine, ToolResult, ToolStarted
from .records import (
    CompactionBeginEvent,
    CompactionEndEvent,
    ContentPartEvent,
    StatusUpdateEvent,
    StepBeginEvent,
    StepInterruptedEvent,
    SubagentEvent,
    ToolCallEvent,
    ToolCallPartEvent,
    ToolResultEvent,
    UnknownWireEvent,
    WireEnvelope,
    WireEvent,
    call_id,
    decode_wire_envelope,
    decode_wire_event,
)

# Lets the child set up its stdin reader before the run request arrives
RUN_REQUEST_DELAY = 0.01

PREVIEW_LIMIT = 120
RESULT_PREVIEW_LIMIT = 200

_STEP_MESSAGES = {
    StepBeginEvent: "{source} started a new step",
    StepInterruptedEvent: "{source} interrupted the current step",
    CompactionBeginEvent: "{source} is compacting the transcript",
    CompactionEndEvent: "{source} finished compaction",
}


def _nest_prefix(prefix: Optional[str], label: str) -> str:
    return f"{prefix}: {label}" if prefix else label


def _approval_title(params: Optional[dict[str, Any]], default: str) -> str:
    if not params:
        return default
    for key in ("title", "message"):
        if isinstance(params.get(key), str):
            return params[key]
    request = params.get("request")
    if isinstance(request, dict):
        for key in ("title", "message"):
            if isinstance(request.get(key), str):
                return request[key]
    return default


class WireModeNormalizer(StreamNormalizer):
    """Normalizer and responder for ``--ui wire`` sessions."""

    def __init__(self, prompt: str, working_dir: str, *args, run_request_id: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.prompt = prompt
        self.working_dir = working_dir
        self.run_request_id = run_request_id or f"run-{int(time.time() * 1000)}"
        # call id -> tool name, for tool_result records that omit the name
        self.pending_tools: dict[str, str] = {}

    def attach(self, handle: ProcessHandle) -> None:
        super().attach(handle)
        asyncio.get_running_loop().call_later(RUN_REQUEST_DELAY, self.send_run_request)

    def send(self, payload: dict[str, Any]) -> bool:
        if self.handle is None:
            return False
        return self.handle.write(json.dumps(payload) + "\n")

    def send_run_request(self) -> None:
        self.send({
            "jsonrpc": "2.0",
            "id": self.run_request_id,
            "method": "run",
            "params": {
                "input": self.prompt,
                "work_dir": self.working_dir,
            },
        })

    def finish(self) -> None:
        super().finish()
        if self.pending_tools:
            self._logger.debug(f"[{self.source}] Discarding {len(self.pending_tools)} unfinished tool call(s)")
            self.pending_tools.clear()

    def decode(self, data: dict[str, Any]) -> WireEnvelope:
        return decode_wire_envelope(data)

    def passthrough(self, line: str) -> None:
        self.sinks.event(OpaqueLine(line))
        self.sinks.error(line if line.endswith("\n") else f"{line}\n")

    def dispatch(self, envelope: WireEnvelope) -> None:
        method = envelope.method
        params = envelope.params

        if method == "event" and params is not None:
            event = params.get("event")
            if isinstance(event, dict):
                self.handle_event(event)
        elif method == "request" and envelope.id is not None:
            self.auto_approve(envelope.id, params)
        elif envelope.id == self.run_request_id and envelope.error is not None:
            self.emit(ErrorLine(envelope.error.message or "Unknown wire error", source=self.source))
        elif method == "status_update":
            self.handle_event({**(params or {}), "type": "status_update"})
        elif envelope.error is not None:
            self.emit(ErrorLine(envelope.error.message or "Unknown error", source=self.source))
        else:
            self._logger.debug(f"[{self.source}] Ignoring wire message method={method!r} id={envelope.id!r}")

    def auto_approve(self, request_id: Any, params: Optional[dict[str, Any]]) -> None:
        """Answer an approval request from the child with an approval."""
        if self.handle is None or self.handle.input_closed:
            self._logger.debug(f"[{self.source}] Cannot approve request {request_id}: stdin closed")
            return

        title = _approval_title(params, f"{self.source} approval")
        sent = self.send({
            "jsonrpc": "2.0",
            "id": request_id,
            "result": {
                "approved": True,
                "action": "approve",
            },
        })
        if sent:
            self._logger.info(f"[{self.source}] ✅ Auto-approved: {title}")
            self.emit(StatusLine(f"Auto-approved: {title}"))

    def handle_event(self, data: dict[str, Any], prefix: Optional[str] = None) -> None:
        try:
            event = decode_wire_event(data)
        except MalformedRecordError as e:
            self._logger.debug(f"[{self.source}] Malformed wire event ({e})")
            self.passthrough(json.dumps(data))
            return
        self.dispatch_event(event, prefix)

    def dispatch_event(self, event: WireEvent, prefix: Optional[str] = None) -> None:
        if isinstance(event, ContentPartEvent):
            self._on_content_part(event, prefix)
        elif isinstance(event, ToolCallEvent):
            name = event.name or event.tool_name or "tool"
            key = call_id(event.id)
            if key:
                self.pending_tools[key] = name
            self.emit(ToolStarted(name, prefix=prefix))
        elif isinstance(event, ToolCallPartEvent):
            key = call_id(event.id)
            name = event.name or event.tool_name or (self.pending_tools.get(key) if key else None) or "tool"
            preview = event.preview or (json.dumps(event.input)[:PREVIEW_LIMIT] if event.input else "")
            self.emit(ToolStarted(name, preview=preview, prefix=prefix))
        elif isinstance(event, ToolResultEvent):
            self._on_tool_result(event, prefix)
        elif isinstance(event, StatusUpdateEvent):
            if event.message:
                self.emit(StatusLine(event.message, prefix=prefix))
            self.emit_usage(event.context_usage or event.usage)
        elif type(event) in _STEP_MESSAGES:
            self.emit(StatusLine(_STEP_MESSAGES[type(event)].format(source=self.source), prefix=prefix))
        elif isinstance(event, SubagentEvent):
            task_id = call_id(event.task_tool_call_id)
            label = f"Subagent {task_id}" if task_id else "Subagent"
            if event.event is not None:
                self.handle_event(event.event, _nest_prefix(prefix, label))
        elif isinstance(event, UnknownWireEvent):
            self._logger.debug(f"[{self.source}] Ignoring wire event type={event.type!r}")

    def _on_content_part(self, event: ContentPartEvent, prefix: Optional[str]) -> None:
        text = event.text if event.text else (event.content if isinstance(event.content, str) else None)
        if text:
            self.emit_text(text, prefix=prefix)
            return
        content_type = event.content_type or "content"
        preview_source = event.data if isinstance(event.data, dict) else event.payload()
        preview = json.dumps(preview_source)[:PREVIEW_LIMIT]
        self.emit(StatusLine(f"{self.source} emitted {content_type}: {preview}", prefix=prefix))

    def _on_tool_result(self, event: ToolResultEvent, prefix: Optional[str]) -> None:
        key = call_id(event.id)
        name = (self.pending_tools.pop(key, None) if key else None) or event.name or "tool"
        is_error = event.status == "error" or event.is_error is True

        preview = ""
        for value in (event.output, event.text, event.content):
            if isinstance(value, str):
                preview = value.strip()
                break
        if not preview and isinstance(event.output, dict):
            preview = json.dumps(event.output)
        preview = truncate(preview, RESULT_PREVIEW_LIMIT)

        self.emit(ToolResult(name, is_error=is_error, preview=preview, prefix=prefix))
