"""Shared types and helpers for engine adapters."""

import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..config import EngineSettings, env_flag, env_value
from ..errors import (
    AuthenticationMissingError,
    BinaryNotFoundError,
    NonZeroExitError,
    UnsupportedPlatformError,
)
from ..executor import CancellationToken, ExitResult, ProcessSpec, run_process
from ..executor.logging import get_logger
from ..executor.utils import truncate
from ..streams import DisplayEvent, StatusLine, StreamNormalizer, StreamSinks, UsageSnapshot

PLAIN_LOGS_ENV = "ENGINE_RELAY_PLAIN_LOGS"
SKIP_PREVIEW_LIMIT = 160


@dataclass(frozen=True)
class EngineMetadata:
    """Static facts about one engine CLI."""

    id: str
    name: str
    label: str
    binary: str
    install_hint: str
    default_model: Optional[str] = None
    auth_env_vars: tuple[str, ...] = ()
    # Lower-case substrings that mean "credentials missing" in a failed run's output
    auth_markers: tuple[str, ...] = ()
    supports_windows: bool = True

    @property
    def binary_env(self) -> str:
        return f"ENGINE_RELAY_{self.id.upper()}_BINARY"

    @property
    def skip_env(self) -> str:
        return f"ENGINE_RELAY_SKIP_{self.id.upper()}"


@dataclass
class EngineRunOptions:
    """One engine invocation as requested by the caller."""

    prompt: str
    working_dir: str
    model: Optional[str] = None
    agent: Optional[str] = None
    env: Optional[dict[str, str]] = None
    on_data: Optional[Callable[[str], None]] = None
    on_error_data: Optional[Callable[[str], None]] = None
    on_usage: Optional[Callable[[UsageSnapshot], None]] = None
    on_event: Optional[Callable[[DisplayEvent], None]] = None
    cancel_token: Optional[CancellationToken] = None
    timeout: Optional[float] = None
    settings: EngineSettings = field(default_factory=EngineSettings)

    @property
    def sinks(self) -> StreamSinks:
        return StreamSinks(
            on_data=self.on_data,
            on_error_data=self.on_error_data,
            on_usage=self.on_usage,
            on_event=self.on_event,
        )


@dataclass
class EngineRunResult:
    """Outcome of a successful engine run."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    usage: Optional[UsageSnapshot] = None
    model_used: Optional[str] = None
    skipped: bool = False


class UsageTracker:
    """Forwards usage snapshots to the caller and keeps the latest one."""

    def __init__(self, engine: str, forward: Optional[Callable[[UsageSnapshot], None]] = None):
        self._engine = engine
        self._forward = forward
        self.last: Optional[UsageSnapshot] = None

    def __call__(self, snapshot: UsageSnapshot) -> None:
        self.last = snapshot
        if self._forward:
            self._forward(snapshot)

    def log_summary(self, exit_code: int) -> None:
        if self.last is None:
            return
        snapshot = self.last
        get_logger().info(
            f"[{self._engine}] 📊 Usage: {snapshot.tokens_in or 0}in/{snapshot.tokens_out or 0}out"
            f" cached={snapshot.cached or 0} exit={exit_code}"
        )


def validate_options(metadata: EngineMetadata, options: EngineRunOptions) -> None:
    if not options.prompt:
        raise ValueError(f"{metadata.name} requires a prompt.")
    if not options.working_dir:
        raise ValueError(f"{metadata.name} requires a working directory.")


def ensure_platform(metadata: EngineMetadata) -> None:
    if sys.platform == "win32" and not metadata.supports_windows:
        raise UnsupportedPlatformError(
            f"{metadata.name} currently supports macOS and Linux. "
            "Run inside WSL or use a supported platform to enable this engine."
        )


def should_skip(metadata: EngineMetadata, env: Optional[dict[str, str]] = None) -> bool:
    return env_flag(metadata.skip_env, env)


def skip_run(metadata: EngineMetadata, options: EngineRunOptions) -> EngineRunResult:
    """Dry run: report the prompt instead of spawning the engine."""
    preview = truncate(options.prompt, SKIP_PREVIEW_LIMIT)
    get_logger().info(f"[{metadata.id}] Skipped via {metadata.skip_env}")
    options.sinks.data(f"[dry-run] {metadata.label} skipped: {preview}\n")
    return EngineRunResult(skipped=True)


def plain_logs_enabled(env: Optional[dict[str, str]] = None) -> bool:
    return env_flag(PLAIN_LOGS_ENV, env)


def resolve_binary(
    metadata: EngineMetadata,
    settings: EngineSettings,
    env: Optional[dict[str, str]] = None,
) -> str:
    """Executable to spawn: env override, then config, then the default name."""
    override = (env_value(metadata.binary_env, env) or "").strip()
    if override:
        return override
    if settings.binary and settings.binary.strip():
        return settings.binary.strip()
    return metadata.binary


def merge_run_env(options: EngineRunOptions) -> dict[str, str]:
    """Configured env overlaid with the caller's env for this run."""
    return {**options.settings.env, **(options.env or {})}


def announce(metadata: EngineMetadata, normalizer: StreamNormalizer) -> None:
    normalizer.emit(StatusLine(f"{metadata.label} is analyzing your request..."))


async def execute(
    metadata: EngineMetadata,
    spec: ProcessSpec,
    normalizer: StreamNormalizer,
) -> ExitResult:
    """Run spec with normalizer wired to the child's streams.

    Raises:
        BinaryNotFoundError: With the engine's install guidance.
    """
    logger = get_logger()
    logger.info(f"[{metadata.id}] 🚀 Starting: {spec.display[:200]}")
    try:
        result = await run_process(
            spec,
            on_stdout=normalizer.feed_stdout,
            on_stderr=normalizer.feed_stderr,
            on_spawn=normalizer.attach,
        )
    except BinaryNotFoundError as e:
        logger.error(f"[{metadata.id}] ❌ {metadata.name} not found when executing: {spec.display}")
        raise BinaryNotFoundError(spec.command, metadata.install_hint, spec.display) from e
    normalizer.finish()
    return result


def check_exit(metadata: EngineMetadata, result: ExitResult) -> None:
    """Turn a failed exit into AuthenticationMissingError or NonZeroExitError."""
    if result.exit_code == 0:
        return

    combined = f"{result.stdout}\n{result.stderr}".lower()
    if any(marker in combined for marker in metadata.auth_markers):
        get_logger().error(f"[{metadata.id}] 🔑 Credentials missing (exit {result.exit_code})")
        raise AuthenticationMissingError(metadata.name, metadata.auth_env_vars)

    output = result.stderr.strip() or result.stdout.strip()
    get_logger().error(f"[{metadata.id}] ❌ Exited with code {result.exit_code}")
    raise NonZeroExitError(metadata.name, result.exit_code, output)
