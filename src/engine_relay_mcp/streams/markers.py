"""Text markers for rendered display events.

A line may start with a color marker such as ``[GRAY]``; terminals that know
the markers colorize the line, everything else shows them verbatim.
"""

import re
from typing import Optional

MARKER_PATTERN = re.compile(r"^\[(?:GRAY|GREEN|RED|ORANGE|CYAN)\]")

_COMMAND_COLORS = {
    "started": "CYAN",
    "success": "GREEN",
    "error": "RED",
}


def format_status(message: str) -> str:
    return f"[GRAY]{message}"


def format_thinking(text: str) -> str:
    return f"[ORANGE]💭 {text}"


def format_command(name: str, status: str) -> str:
    color = _COMMAND_COLORS.get(status, "CYAN")
    return f"[{color}]● Command: {name}"


def format_result(text: str, is_error: bool = False) -> str:
    return f"[RED]⎿ {text}" if is_error else f"⎿ {text}"


def apply_prefix(text: str, prefix: Optional[str] = None) -> str:
    """Insert a label after the leading marker (if any) of the first line."""
    if not prefix:
        return text
    match = MARKER_PATTERN.match(text)
    if match:
        return f"{match.group(0)}{prefix}: {text[match.end():]}"
    return f"{prefix}: {text}"
