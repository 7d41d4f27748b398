"""Tools package for engine-relay-mcp."""

from .invoke import invoke_engine
from .status import check_status

__all__ = [
    "invoke_engine",
    "check_status",
]
