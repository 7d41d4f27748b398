"""Token usage extraction shared by every stream protocol.

Engines name the same quantity differently. Each quantity is read through a
priority chain of field names; the first field holding a usable count wins:

    container:  token_count > usage > context_usage > tokens
    tokens_in:  total > input > prompt > request
    tokens_out: output > completion > response
    cached:     cached > cache > cached_input

A container that is a bare number is taken as tokens_in. A cache entry may be a
``{"read": n, "write": m}`` breakdown, counted as n + m.
"""

from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import BaseModel, StrictFloat, StrictInt, TypeAdapter, ValidationError

from .events import UsageSnapshot

CONTAINER_KEYS = ("token_count", "usage", "context_usage", "tokens")
TOKENS_IN_KEYS = ("total", "input", "prompt", "request")
TOKENS_OUT_KEYS = ("output", "completion", "response")
CACHED_KEYS = ("cached", "cache", "cached_input")


class CacheBreakdown(BaseModel):
    read: Optional[StrictInt] = None
    write: Optional[StrictInt] = None

    @property
    def total(self) -> Optional[int]:
        if self.read is None and self.write is None:
            return None
        return (self.read or 0) + (self.write or 0)


_COUNT = TypeAdapter(Union[StrictInt, StrictFloat, CacheBreakdown])


def decode_count(value: Any) -> Optional[int]:
    """Decode one token count, or None if the value is not a count."""
    if value is None or isinstance(value, bool):
        return None
    try:
        decoded = _COUNT.validate_python(value)
    except ValidationError:
        return None
    if isinstance(decoded, CacheBreakdown):
        return decoded.total
    return int(decoded)


def first_count(tokens: Mapping[str, Any], keys: tuple[str, ...]) -> Optional[int]:
    for key in keys:
        count = decode_count(tokens.get(key))
        if count is not None:
            return count
    return None


def extract_usage(payload: Optional[Mapping[str, Any]]) -> Optional[UsageSnapshot]:
    """Build a UsageSnapshot from a usage-bearing record.

    Returns None when the record carries neither an input nor an output count.
    """
    if not payload:
        return None

    raw = None
    for key in CONTAINER_KEYS:
        if payload.get(key) is not None:
            raw = payload[key]
            break
    if raw is None:
        return None

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return UsageSnapshot(tokens_in=int(raw))

    if not isinstance(raw, Mapping):
        return None

    snapshot = UsageSnapshot(
        tokens_in=first_count(raw, TOKENS_IN_KEYS),
        tokens_out=first_count(raw, TOKENS_OUT_KEYS),
        cached=first_count(raw, CACHED_KEYS),
    )
    if snapshot.tokens_in is None and snapshot.tokens_out is None:
        return None
    return snapshot
