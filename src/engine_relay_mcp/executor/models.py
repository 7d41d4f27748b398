"""Data models for executor module."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .process import CancellationToken


class StreamMode(str, Enum):
    """How the child's standard streams are wired."""

    PIPE = "pipe"
    INHERIT = "inherit"


@dataclass(frozen=True)
class ProcessSpec:
    """Everything needed to spawn one child process."""

    command: str
    args: tuple[str, ...] = ()
    cwd: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)
    input_text: Optional[str] = None
    keep_input_open: bool = False
    timeout: Optional[float] = None
    cancel_token: Optional["CancellationToken"] = None
    stream_mode: StreamMode = StreamMode.PIPE

    @property
    def display(self) -> str:
        """Command line for logs and error messages."""
        return " ".join([self.command, *self.args]).strip()


@dataclass
class ExitResult:
    """Result of a finished child process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
