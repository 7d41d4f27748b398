"""Error types raised while driving engine CLIs."""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


class EngineError(Exception):
    """Base class for failures of a single engine invocation."""

    kind = "engine_error"


class BinaryNotFoundError(EngineError):
    """The engine executable could not be spawned."""

    kind = "binary_not_found"

    def __init__(self, command: str, install_hint: Optional[str] = None, full_command: Optional[str] = None):
        self.command = command
        self.install_hint = install_hint
        self.full_command = full_command or command
        message = f"'{command}' is not available when executing \"{self.full_command}\"."
        if install_hint:
            message += f" Install it via:\n  {install_hint}"
        super().__init__(message)


class ProcessTimeoutError(EngineError, TimeoutError):
    """The child process outlived its configured timeout and was terminated."""

    kind = "timeout"

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Process timed out after {timeout}s: {command}")


class ProcessCancelledError(EngineError):
    """The caller's cancellation token fired before the child settled."""

    kind = "cancelled"

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Process cancelled: {command}")


class UnsupportedPlatformError(EngineError):
    """The engine does not run on this operating system."""

    kind = "unsupported_platform"


class NonZeroExitError(EngineError):
    """The engine exited with a failure code."""

    kind = "non_zero_exit"

    def __init__(self, engine_name: str, exit_code: int, output: str = ""):
        self.engine_name = engine_name
        self.exit_code = exit_code
        self.output = output
        sample = "\n".join((output.strip() or "no error output").split("\n")[:10])
        super().__init__(f"{engine_name} exited with code {exit_code}: {sample}")


class AuthenticationMissingError(EngineError):
    """The engine reported missing credentials."""

    kind = "authentication_missing"

    def __init__(self, engine_name: str, env_vars: tuple[str, ...] = ()):
        self.engine_name = engine_name
        self.env_vars = tuple(env_vars)
        lines = [f"{engine_name} could not find its API credentials."]
        if self.env_vars:
            lines.append("Set them in your shell before running, e.g.:")
            lines.extend(f'  export {name}="..."' for name in self.env_vars)
        super().__init__("\n".join(lines))


@dataclass
class PermissionRequest:
    """A permission the engine is blocked on."""

    engine: str
    capability: Optional[str] = None
    pattern: Union[str, tuple[str, ...], None] = None
    path: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    title: Optional[str] = None
    raw: Optional[dict[str, Any]] = None

    def describe(self) -> str:
        """Human-readable one-liner used in prompts and errors."""
        if isinstance(self.pattern, tuple):
            scope = ", ".join(self.pattern)
        else:
            scope = self.pattern
        path = self.path
        if path is None and isinstance(self.metadata.get("path"), str):
            path = self.metadata["path"]
        capability = self.capability or "operation"
        if path:
            return f"{capability} on {path}"
        if scope:
            return f"{capability} ({scope})"
        if self.title:
            return self.title
        return capability


class PermissionRequiredError(EngineError):
    """The engine stopped because it needs an allow/deny decision."""

    kind = "permission_required"

    def __init__(self, message: str, request: PermissionRequest):
        self.engine = request.engine
        self.request = request
        super().__init__(message)


class PermissionRejectedError(EngineError):
    """The user rejected a permission request."""

    kind = "permission_rejected"


class PolicyUnresolvableError(EngineError):
    """A permission request cannot be turned into a policy update."""

    kind = "policy_unresolvable"


class MalformedRecordError(ValueError):
    """A stream line is not a record of the expected shape.

    Normalizers catch this and forward the line as plain text.
    """
