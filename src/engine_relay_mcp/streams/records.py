"""Typed records decoded from engine stream lines.

Each protocol has a closed set of record variants selected by a string tag
(``role`` in print mode, ``type`` for wire and OpenCode events). Tags outside
the set decode to the protocol's Unknown* variant.

Optional fields are lenient: a value of the wrong JSON type reads as None
instead of rejecting the record, so one odd field never hides the rest of it.
Lines that are not JSON objects raise MalformedRecordError.
"""

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError

from ..errors import MalformedRecordError


def as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def as_dict(value: Any) -> Optional[dict[str, Any]]:
    return value if isinstance(value, dict) else None


def _as_object(value: Any) -> Any:
    return value if isinstance(value, (dict, BaseModel)) else None


def _as_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _as_call_id(value: Any) -> Union[str, int, None]:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, (str, int)) else None


def _as_patterns(value: Any) -> Union[str, list[str], None]:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return None


def _as_parts(value: Any) -> Optional[list[Any]]:
    if isinstance(value, list):
        return [item for item in value if item is None or isinstance(item, (str, dict, BaseModel))]
    return None


def _as_content(value: Any) -> Any:
    return value if isinstance(value, str) else _as_parts(value)


LenientStr = Annotated[Optional[str], BeforeValidator(as_str)]
LenientBool = Annotated[Optional[bool], BeforeValidator(_as_bool)]
LenientDict = Annotated[Optional[dict[str, Any]], BeforeValidator(as_dict)]
CallId = Annotated[Union[str, int, None], BeforeValidator(_as_call_id)]


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow")

    def payload(self) -> dict[str, Any]:
        """The record as a plain dict, unknown fields included."""
        return self.model_dump(exclude_none=True)


def parse_json_object(line: str) -> dict[str, Any]:
    """Parse one stream line into a JSON object."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(f"invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedRecordError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _validate(model: type[_Record], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedRecordError(f"{model.__name__}: {e.error_count()} invalid field(s)") from e


def _select(variants: dict[str, type[_Record]], tag: Any, unknown: type[_Record]) -> type[_Record]:
    if isinstance(tag, str):
        return variants.get(tag, unknown)
    return unknown


def call_id(value: Union[str, int, None]) -> Optional[str]:
    return None if value is None else str(value)


# Print mode


class ContentPart(_Record):
    type: LenientStr = None
    text: LenientStr = None


PartList = list[Union[str, ContentPart, None]]


class AssistantRecord(_Record):
    role: Literal["assistant"]
    parts: Annotated[Optional[PartList], BeforeValidator(_as_parts)] = None
    content: Annotated[Union[PartList, str, None], BeforeValidator(_as_content)] = None
    text: LenientStr = None

    def part_list(self) -> Optional[PartList]:
        if self.parts is not None:
            return self.parts
        if isinstance(self.content, list):
            return self.content
        return None


class ToolRecord(_Record):
    role: Literal["tool"]
    name: LenientStr = None
    tool_name: LenientStr = None
    status: LenientStr = None
    is_error: LenientBool = None
    content: Any = None
    output: Any = None
    text: Any = None


class UsageRecord(_Record):
    role: Literal["_usage"]


class CheckpointRecord(_Record):
    role: Literal["_checkpoint"]
    id: CallId = None
    checkpoint_id: CallId = None


class UnknownPrintRecord(_Record):
    role: Any = None


PrintRecord = Union[AssistantRecord, ToolRecord, UsageRecord, CheckpointRecord, UnknownPrintRecord]

PRINT_RECORDS: dict[str, type[_Record]] = {
    "assistant": AssistantRecord,
    "tool": ToolRecord,
    "_usage": UsageRecord,
    "_checkpoint": CheckpointRecord,
}


def decode_print_record(data: dict[str, Any]) -> PrintRecord:
    return _validate(_select(PRINT_RECORDS, data.get("role"), UnknownPrintRecord), data)


# Wire mode


class WireError(_Record):
    message: LenientStr = None
    code: Any = None


class WireEnvelope(_Record):
    jsonrpc: LenientStr = None
    method: LenientStr = None
    id: CallId = None
    params: LenientDict = None
    result: Any = None
    error: Annotated[Optional[WireError], BeforeValidator(_as_object)] = None


class ContentPartEvent(_Record):
    type: Literal["content_part"]
    text: LenientStr = None
    content: Any = None
    content_type: LenientStr = None
    data: Any = None


class ToolCallEvent(_Record):
    type: Literal["tool_call"]
    id: CallId = None
    name: LenientStr = None
    tool_name: LenientStr = None


class ToolCallPartEvent(_Record):
    type: Literal["tool_call_part"]
    id: CallId = None
    name: LenientStr = None
    tool_name: LenientStr = None
    preview: LenientStr = None
    input: LenientDict = None


class ToolResultEvent(_Record):
    type: Literal["tool_result"]
    id: CallId = None
    name: LenientStr = None
    status: LenientStr = None
    is_error: LenientBool = None
    output: Any = None
    text: Any = None
    content: Any = None


class StatusUpdateEvent(_Record):
    type: Literal["status_update"]
    message: LenientStr = None
    # only object-shaped usage is read; a bare ratio such as 0.42 is skipped
    context_usage: LenientDict = None
    usage: LenientDict = None


class StepBeginEvent(_Record):
    type: Literal["step_begin"]


class StepInterruptedEvent(_Record):
    type: Literal["step_interrupted"]


class CompactionBeginEvent(_Record):
    type: Literal["compaction_begin"]


class CompactionEndEvent(_Record):
    type: Literal["compaction_end"]


class SubagentEvent(_Record):
    type: Literal["subagent_event"]
    task_tool_call_id: CallId = None
    event: LenientDict = None


class UnknownWireEvent(_Record):
    type: Any = None


WireEvent = Union[
    ContentPartEvent,
    ToolCallEvent,
    ToolCallPartEvent,
    ToolResultEvent,
    StatusUpdateEvent,
    StepBeginEvent,
    StepInterruptedEvent,
    CompactionBeginEvent,
    CompactionEndEvent,
    SubagentEvent,
    UnknownWireEvent,
]

WIRE_EVENTS: dict[str, type[_Record]] = {
    "content_part": ContentPartEvent,
    "tool_call": ToolCallEvent,
    "tool_call_part": ToolCallPartEvent,
    "tool_result": ToolResultEvent,
    "status_update": StatusUpdateEvent,
    "step_begin": StepBeginEvent,
    "step_interrupted": StepInterruptedEvent,
    "compaction_begin": CompactionBeginEvent,
    "compaction_end": CompactionEndEvent,
    "subagent_event": SubagentEvent,
}


def decode_wire_envelope(data: dict[str, Any]) -> WireEnvelope:
    return _validate(WireEnvelope, data)


def decode_wire_event(data: dict[str, Any]) -> WireEvent:
    return _validate(_select(WIRE_EVENTS, data.get("type"), UnknownWireEvent), data)


# OpenCode JSON events


class TextPart(_Record):
    text: LenientStr = None


class ToolState(_Record):
    output: Any = None
    title: LenientStr = None
    input: LenientDict = None


class ToolPart(_Record):
    tool: LenientStr = None
    state: Annotated[Optional[ToolState], BeforeValidator(_as_object)] = None


class StepPart(_Record):
    reason: LenientStr = None
    tokens: LenientDict = None
    cost: Any = None


class ErrorData(_Record):
    message: LenientStr = None


class ErrorPart(_Record):
    data: Annotated[Optional[ErrorData], BeforeValidator(_as_object)] = None
    message: LenientStr = None
    name: LenientStr = None


class PermissionPayload(_Record):
    id: LenientStr = None
    type: LenientStr = None
    pattern: Annotated[Union[str, list[str], None], BeforeValidator(_as_patterns)] = None
    title: LenientStr = None
    metadata: LenientDict = None


class OpenCodeText(_Record):
    type: Literal["text"]
    part: Annotated[Optional[TextPart], BeforeValidator(_as_object)] = None


class OpenCodeToolUse(_Record):
    type: Literal["tool_use"]
    part: Annotated[Optional[ToolPart], BeforeValidator(_as_object)] = None


class OpenCodeStep(_Record):
    type: Literal["step_start", "step_finish"]
    part: Annotated[Optional[StepPart], BeforeValidator(_as_object)] = None


class OpenCodeError(_Record):
    type: Literal["error"]
    error: Annotated[Optional[ErrorPart], BeforeValidator(_as_object)] = None
    part: Annotated[Optional[ErrorPart], BeforeValidator(_as_object)] = None


class OpenCodePermission(_Record):
    type: Literal["permission", "permission.updated", "permission.requested", "permission_required"]
    permission: LenientDict = None
    properties: LenientDict = None

    def extract(self) -> Optional[PermissionPayload]:
        """Pull the permission payload from either of its two locations."""
        if self.permission is not None:
            return _validate(PermissionPayload, self.permission)
        props = self.properties
        if props and (props.get("title") or props.get("id") or props.get("type")):
            metadata = props.get("metadata")
            return _validate(PermissionPayload, {
                "id": props.get("id"),
                "type": props.get("type"),
                "pattern": props.get("pattern"),
                "title": props.get("title"),
                "metadata": metadata if isinstance(metadata, dict) else props,
            })
        return None


class UnknownOpenCodeEvent(_Record):
    type: Any = None


OpenCodeEvent = Union[
    OpenCodeText,
    OpenCodeToolUse,
    OpenCodeStep,
    OpenCodeError,
    OpenCodePermission,
    UnknownOpenCodeEvent,
]

OPENCODE_EVENTS: dict[str, type[_Record]] = {
    "text": OpenCodeText,
    "tool_use": OpenCodeToolUse,
    "step_start": OpenCodeStep,
    "step_finish": OpenCodeStep,
    "error": OpenCodeError,
    "permission": OpenCodePermission,
    "permission.updated": OpenCodePermission,
    "permission.requested": OpenCodePermission,
    "permission_required": OpenCodePermission,
}


def decode_opencode_event(data: dict[str, Any]) -> OpenCodeEvent:
    return _validate(_select(OPENCODE_EVENTS, data.get("type"), UnknownOpenCodeEvent), data)
