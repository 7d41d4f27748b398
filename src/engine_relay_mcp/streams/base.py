"""Common line handling for stream normalizers."""

from typing import Any, Optional

from ..errors import MalformedRecordError
from ..executor.logging import get_logger
from ..executor.process import ProcessHandle
from ..executor.utils import LineBuffer, normalize_chunk
from .events import AssistantText, DisplayEvent, ErrorLine, OpaqueLine, StreamSinks
from .records import parse_json_object
from .transcript import TranscriptDeduplicator
from .usage import extract_usage


class StreamNormalizer:
    """Turns raw child output into DisplayEvents pushed to StreamSinks.

    Subclasses implement decode() for their record shape and dispatch() for
    the events each record produces.
    """

    source = "Agent"

    def __init__(
        self,
        sinks: Optional[StreamSinks] = None,
        *,
        plain_logs: bool = False,
        dedupe_transcript: bool = False,
    ):
        self.sinks = sinks or StreamSinks()
        self.plain_logs = plain_logs
        self.handle: Optional[ProcessHandle] = None
        self._lines = LineBuffer()
        self._transcript = TranscriptDeduplicator() if dedupe_transcript else None
        self._logger = get_logger()

    def attach(self, handle: ProcessHandle) -> None:
        """Called by the runner once the child is spawned."""
        self.handle = handle

    def feed_stdout(self, chunk: str) -> None:
        for line in self._lines.feed(normalize_chunk(chunk, self.plain_logs)):
            self.process_line(line)

    def feed_stderr(self, chunk: str) -> None:
        self.sinks.error(normalize_chunk(chunk, self.plain_logs))

    def finish(self) -> None:
        """Process whatever is left after the last newline."""
        remainder = self._lines.flush()
        if remainder.strip():
            self.process_line(remainder)

    def process_line(self, line: str) -> None:
        stripped = line.strip()
        if not stripped:
            return
        try:
            record = self.decode(parse_json_object(stripped))
        except MalformedRecordError as e:
            self._logger.debug(f"[{self.source}] Passing through unparsed line ({e}): {stripped[:100]}")
            self.passthrough(line)
            return
        self.dispatch(record)

    def decode(self, data: dict[str, Any]) -> Any:
        raise NotImplementedError

    def dispatch(self, record: Any) -> None:
        raise NotImplementedError

    def passthrough(self, line: str) -> None:
        self.emit(OpaqueLine(line))

    def emit(self, event: DisplayEvent) -> None:
        self.sinks.event(event)
        text = event.render()
        if not text.endswith("\n"):
            text += "\n"
        if isinstance(event, ErrorLine):
            self.sinks.error(text)
        else:
            self.sinks.data(text)

    def emit_text(self, text: str, prefix: Optional[str] = None) -> None:
        """Emit assistant text, deduplicated when transcript dedup is on."""
        if self._transcript is not None:
            text = self._transcript.feed(text)
        if text:
            self.emit(AssistantText(text, prefix=prefix))

    def emit_usage(self, payload: Optional[dict[str, Any]]) -> None:
        snapshot = extract_usage(payload)
        if snapshot is not None:
            self.sinks.usage(snapshot)
