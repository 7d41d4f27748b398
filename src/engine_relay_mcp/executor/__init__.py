"""Executor package for running engine CLI processes."""

from .cli import check_binary_available, find_binary
from .models import ExitResult, ProcessSpec, StreamMode
from .process import (
    CancellationToken,
    ProcessHandle,
    ProcessRegistry,
    get_process_registry,
    run_process,
)

__all__ = [
    "run_process",
    "check_binary_available",
    "find_binary",
    "CancellationToken",
    "ProcessHandle",
    "ProcessRegistry",
    "get_process_registry",
    "ProcessSpec",
    "StreamMode",
    "ExitResult",
]
