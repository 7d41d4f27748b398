"""Print mode: one JSON record per stdout line, dispatched by ``role``."""

import json
from typing import Any

from ..executor.utils import truncate
from .base import StreamNormalizer
from .events import CheckpointMarker, ThinkingText, ToolResult
from .records import (
    AssistantRecord,
    CheckpointRecord,
    PrintRecord,
    ToolRecord,
    UnknownPrintRecord,
    UsageRecord,
    call_id,
    decode_print_record,
)

TOOL_PREVIEW_LIMIT = 200


def _tool_output(record: ToolRecord) -> str:
    if isinstance(record.content, list):
        return "\n".join(item if isinstance(item, str) else json.dumps(item) for item in record.content)
    for value in (record.content, record.output, record.text):
        if isinstance(value, str):
            return value
    return ""


class PrintModeNormalizer(StreamNormalizer):
    """Normalizer for ``--print --output-format stream-json`` output."""

    def decode(self, data: dict[str, Any]) -> PrintRecord:
        return decode_print_record(data)

    def dispatch(self, record: PrintRecord) -> None:
        if isinstance(record, AssistantRecord):
            self._on_assistant(record)
        elif isinstance(record, ToolRecord):
            self._on_tool(record)
        elif isinstance(record, UsageRecord):
            self.emit_usage(record.payload())
        elif isinstance(record, CheckpointRecord):
            self.emit(CheckpointMarker(call_id(record.id) or call_id(record.checkpoint_id)))
        elif isinstance(record, UnknownPrintRecord):
            self._logger.debug(f"[{self.source}] Ignoring record with role={record.role!r}")

    def _on_assistant(self, record: AssistantRecord) -> None:
        parts = record.part_list()
        if parts is None:
            if record.text:
                self.emit_text(record.text)
            return

        text_parts: list[str] = []
        thinking_parts: list[str] = []
        for part in parts:
            if not part:
                continue
            if isinstance(part, str):
                text_parts.append(part)
            elif part.type == "text" and part.text:
                text_parts.append(part.text)
            elif part.type == "thinking" and part.text:
                thinking_parts.append(part.text)

        if thinking_parts:
            self.emit(ThinkingText("".join(thinking_parts)))
        if text_parts:
            self.emit_text("".join(text_parts))

    def _on_tool(self, record: ToolRecord) -> None:
        name = record.name or record.tool_name or "tool"
        is_error = record.status == "error" or record.is_error is True
        preview = truncate(_tool_output(record).strip(), TOOL_PREVIEW_LIMIT)
        self.emit(ToolResult(name, is_error=is_error, preview=preview))
