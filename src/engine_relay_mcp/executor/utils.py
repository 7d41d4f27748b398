"""Utility functions for executor module."""

import re

# CSI sequences (colors, cursor movement) plus lone two-byte escapes
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text.

    This removes color codes, cursor movement, and other terminal control sequences.

    Args:
        text: Text potentially containing ANSI escape codes.

    Returns:
        Clean text without ANSI codes.
    """
    return ANSI_ESCAPE_PATTERN.sub("", text)


def normalize_newlines(text: str) -> str:
    """Convert CRLF and bare CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def normalize_chunk(chunk: str, plain_logs: bool = False) -> str:
    """Normalize a raw output chunk before line splitting."""
    result = normalize_newlines(chunk)
    if plain_logs:
        result = strip_ansi(result)
    return result


def truncate(text: str, limit: int) -> str:
    """Cap text at limit characters, marking the cut with an ellipsis."""
    return f"{text[:limit]}..." if len(text) > limit else text


class LineBuffer:
    """Accumulates chunks and yields only complete lines."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return the lines it completed (without newlines)."""
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> str:
        """Return and clear whatever is left after the last newline."""
        remainder, self._pending = self._pending, ""
        return remainder

    @property
    def pending(self) -> str:
        return self._pending
