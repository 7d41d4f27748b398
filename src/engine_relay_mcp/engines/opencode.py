"""OpenCode adapter: ``opencode run --format json`` with the prompt on stdin."""

import asyncio
import os
import time
from pathlib import Path
from typing import Optional

from ..config import env_value
from ..executor import ProcessSpec
from ..executor.logging import get_logger
from ..permissions.policy import OPENCODE_POLICY_ENV
from ..streams import OpenCodeNormalizer, StatusLine
from .base import (
    EngineMetadata,
    EngineRunOptions,
    EngineRunResult,
    UsageTracker,
    announce,
    check_exit,
    execute,
    merge_run_env,
    plain_logs_enabled,
    resolve_binary,
    should_skip,
    skip_run,
    validate_options,
)

METADATA = EngineMetadata(
    id="opencode",
    name="OpenCode",
    label="OpenCode",
    binary="opencode",
    install_hint=(
        "npm i -g opencode-ai@latest\n"
        "  brew install opencode\n"
        "Docs: https://opencode.ai/docs"
    ),
)

# Allow every capability so unattended runs never stop on a prompt
DEFAULT_PERMISSION_POLICY = '{"*":"allow","bash":{"*":"allow"}}'

HOME_ENV = "OPENCODE_HOME"
DEFAULT_HOME = "~/.engine-relay/opencode"
TIMEOUT_ENV = "ENGINE_RELAY_OPENCODE_TIMEOUT_MS"
DEFAULT_TIMEOUT = 300.0

HEARTBEAT_INTERVAL = 10.0
HEARTBEAT_MESSAGE = "Waiting on OpenCode response…"


def build_run_args(model: Optional[str] = None, agent: Optional[str] = None) -> list[str]:
    args = ["run", "--format", "json"]
    if model and model.strip():
        args.extend(["--model", model.strip()])
    if agent and agent.strip():
        args.extend(["--agent", agent.strip()])
    return args


def resolve_home(env: Optional[dict[str, str]] = None) -> Path:
    raw = (env_value(HOME_ENV, env) or "").strip() or DEFAULT_HOME
    return Path(raw).expanduser().resolve()


def resolve_runner_env(env: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Run env with OpenCode defaults for anything the caller and process leave unset."""
    overrides = env or {}
    result = dict(overrides)
    home = resolve_home(overrides)

    defaults = {
        OPENCODE_POLICY_ENV: DEFAULT_PERMISSION_POLICY,
        # Skip LSP and plugin bootstrapping
        "OPENCODE_DISABLE_LSP_DOWNLOAD": "1",
        "OPENCODE_DISABLE_DEFAULT_PLUGINS": "1",
        "XDG_CONFIG_HOME": str(home / "config"),
        "XDG_CACHE_HOME": str(home / "cache"),
        "XDG_DATA_HOME": str(home / "data"),
    }
    for key, value in defaults.items():
        if key not in overrides and key not in os.environ:
            result[key] = value
    return result


def resolve_timeout(timeout: Optional[float], env: Optional[dict[str, str]] = None) -> float:
    """Timeout in seconds: explicit value, then the env override in ms, then 300s."""
    if timeout is not None and timeout > 0:
        return timeout
    raw = env_value(TIMEOUT_ENV, env)
    if raw:
        try:
            millis = float(raw)
        except ValueError:
            get_logger().warning(f"[opencode] Ignoring invalid {TIMEOUT_ENV}={raw!r}")
        else:
            if millis > 0:
                return millis / 1000
    return DEFAULT_TIMEOUT


async def heartbeat(normalizer: OpenCodeNormalizer, interval: float = HEARTBEAT_INTERVAL) -> None:
    """Emit a waiting status whenever the child has been silent for interval seconds."""
    while True:
        await asyncio.sleep(interval)
        now = time.monotonic()
        if now - normalizer.last_activity > interval:
            normalizer.emit(StatusLine(HEARTBEAT_MESSAGE))
            # One status line per silent interval
            normalizer.last_activity = now


async def run_opencode(options: EngineRunOptions) -> EngineRunResult:
    """Run OpenCode once and stream its output to the caller's sinks.

    Raises:
        ValueError: Missing prompt or working directory.
        PermissionRequiredError: OpenCode stopped on a pending permission.
        BinaryNotFoundError: The opencode executable is not installed.
        NonZeroExitError: Any other failed exit.
        ProcessTimeoutError, ProcessCancelledError: From the process runner.
    """
    logger = get_logger()
    validate_options(METADATA, options)

    run_env = merge_run_env(options)
    if should_skip(METADATA, run_env):
        return skip_run(METADATA, options)

    settings = options.settings
    model = (options.model or settings.model or "").strip() or None
    runner_env = resolve_runner_env(run_env)
    binary = resolve_binary(METADATA, settings, run_env)
    timeout = resolve_timeout(options.timeout or settings.timeout, run_env)

    usage = UsageTracker(METADATA.id, options.on_usage)
    sinks = options.sinks
    sinks.on_usage = usage
    normalizer = OpenCodeNormalizer(sinks, plain_logs=plain_logs_enabled(run_env))

    spec = ProcessSpec(
        command=binary,
        args=tuple(build_run_args(model, options.agent)),
        cwd=options.working_dir,
        env=runner_env,
        input_text=options.prompt,
        timeout=timeout,
        cancel_token=options.cancel_token,
    )

    logger.debug(
        f"[{METADATA.id}] prompt_length={len(options.prompt)} agent={options.agent or 'build'} "
        f"model={model or 'default'} timeout={timeout}s"
    )
    logger.debug(
        f"[{METADATA.id}] env: PERMISSION={'set' if runner_env.get(OPENCODE_POLICY_ENV) else 'unset'} "
        f"DISABLE_LSP={runner_env.get('OPENCODE_DISABLE_LSP_DOWNLOAD', 'unset')}"
    )
    announce(METADATA, normalizer)

    beat = asyncio.create_task(heartbeat(normalizer))
    try:
        result = await execute(METADATA, spec, normalizer)
    finally:
        beat.cancel()

    if normalizer.pending_permission is not None:
        raise normalizer.pending_permission

    usage.log_summary(result.exit_code)
    check_exit(METADATA, result)

    logger.info(f"[{METADATA.id}] ✅ Completed")
    return EngineRunResult(
        stdout=result.stdout,
        stderr=result.stderr,
        exit_code=result.exit_code,
        usage=usage.last,
        model_used=model,
    )
