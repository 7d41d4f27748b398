"""Suppression of re-emitted transcript text.

Some engines send the whole accumulated assistant text on every update instead
of a delta. TranscriptDeduplicator turns such snapshots back into deltas and
drops paragraphs identical to the last one already shown.
"""

import re

PARAGRAPH_SPLIT = re.compile(r"(\n{2,})")


def compute_text_delta(previous: str, current: str) -> tuple[str, str]:
    """Return (delta, new_snapshot) for a transcript update."""
    if not previous:
        return current, current
    if current == previous:
        return "", previous
    if current.startswith(previous):
        return current[len(previous):], current
    return current, current


class TranscriptDeduplicator:
    def __init__(self) -> None:
        self._snapshot = ""
        self._last_paragraph = ""

    def feed(self, text: str) -> str:
        """Return the new, not-yet-shown part of text ("" if nothing new)."""
        delta, self._snapshot = compute_text_delta(self._snapshot, text)
        deduped = self._drop_repeated_paragraphs(delta)
        return deduped if deduped.strip() else ""

    def _drop_repeated_paragraphs(self, text: str) -> str:
        if not text:
            return text

        segments = PARAGRAPH_SPLIT.split(text)
        if len(segments) == 1:
            normalized = text.strip()
            if normalized and normalized == self._last_paragraph:
                return ""
            if normalized:
                self._last_paragraph = normalized
            return text

        # Even indexes are paragraphs, odd indexes the separators between them
        output = []
        i = 0
        while i < len(segments):
            segment = segments[i]
            normalized = segment.strip()
            if i % 2 == 1 or not normalized:
                output.append(segment)
                i += 1
                continue
            if normalized == self._last_paragraph:
                i += 2
                continue
            self._last_paragraph = normalized
            output.append(segment)
            i += 1
        return "".join(output)
