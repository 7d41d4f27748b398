"""Kimi CLI adapter.

Kimi runs in one of two modes:
- print: ``--print --output-format stream-json``, prompt passed as an argument
- wire: ``--ui wire``, JSON-RPC over stdin/stdout with automatic approvals
"""

import os
from typing import Optional

from ..config import EngineSettings, env_value
from ..executor import ProcessSpec
from ..executor.logging import get_logger
from ..streams import PrintModeNormalizer, StreamNormalizer, WireModeNormalizer
from .base import (
    EngineMetadata,
    EngineRunOptions,
    EngineRunResult,
    UsageTracker,
    announce,
    check_exit,
    ensure_platform,
    execute,
    merge_run_env,
    plain_logs_enabled,
    resolve_binary,
    should_skip,
    skip_run,
    validate_options,
)

METADATA = EngineMetadata(
    id="kimi",
    name="Kimi CLI",
    label="Kimi",
    binary="kimi",
    install_hint="uv tool install --python 3.13 kimi-cli",
    default_model="kimi-for-coding",
    auth_env_vars=("KIMI_API_KEY",),
    auth_markers=("kimi_api_key", "llm not set", "api key"),
    supports_windows=False,
)

MODE_ENV = "ENGINE_RELAY_KIMI_MODE"
MCP_CONFIG_FILES_ENV = "KIMI_MCP_CONFIG_FILES"
MODEL_ENV = "KIMI_MODEL_NAME"

PRINT_MODE = "print"
WIRE_MODE = "wire"

ENV_DEFAULTS = {
    "KIMI_BASE_URL": "https://api.kimi.com/coding/v1",
    "KIMI_MODEL_MAX_CONTEXT_SIZE": "262144",
}


def resolve_run_mode(settings: EngineSettings, env: Optional[dict[str, str]] = None) -> str:
    source = env_value(MODE_ENV, env) or settings.mode or ""
    return WIRE_MODE if source.strip().lower() == WIRE_MODE else PRINT_MODE


def resolve_model(
    model: Optional[str], settings: EngineSettings, env: Optional[dict[str, str]] = None
) -> Optional[str]:
    for candidate in (model, settings.model, env_value(MODEL_ENV, env), METADATA.default_model):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def resolve_mcp_config_files(settings: EngineSettings, env: Optional[dict[str, str]] = None) -> list[str]:
    source = env_value(MCP_CONFIG_FILES_ENV, env)
    if source:
        files = [value.strip() for value in source.split(",") if value.strip()]
        if files:
            return files
    return [value.strip() for value in settings.mcp_config_files if value.strip()]


def apply_env_defaults(env: dict[str, str], model: Optional[str]) -> dict[str, str]:
    """Fill in Kimi variables that neither the run nor the process env sets."""
    result = dict(env)
    defaults = dict(ENV_DEFAULTS)
    if model:
        defaults[MODEL_ENV] = model
    for key, value in defaults.items():
        if not result.get(key) and not os.environ.get(key):
            result[key] = value
    return result


def _common_args(model: Optional[str], mcp_config_files: list[str]) -> list[str]:
    args = []
    if model and model.strip():
        args.extend(["-m", model.strip()])
    for path in mcp_config_files:
        if path.strip():
            args.extend(["--mcp-config-file", path.strip()])
    return args


def build_print_args(
    prompt: str, working_dir: str, model: Optional[str] = None, mcp_config_files: Optional[list[str]] = None
) -> list[str]:
    args = ["--print", "--output-format", "stream-json", "--work-dir", working_dir, "--yolo"]
    args.extend(_common_args(model, mcp_config_files or []))
    args.extend(["--command", prompt])
    return args


def build_wire_args(
    working_dir: str, model: Optional[str] = None, mcp_config_files: Optional[list[str]] = None
) -> list[str]:
    args = ["--ui", "wire", "--work-dir", working_dir]
    args.extend(_common_args(model, mcp_config_files or []))
    return args


async def run_kimi(options: EngineRunOptions) -> EngineRunResult:
    """Run Kimi once and stream its output to the caller's sinks.

    Raises:
        ValueError: Missing prompt or working directory.
        UnsupportedPlatformError: Running on Windows.
        BinaryNotFoundError: The kimi executable is not installed.
        AuthenticationMissingError: Kimi failed for lack of credentials.
        NonZeroExitError: Any other failed exit.
        ProcessTimeoutError, ProcessCancelledError: From the process runner.
    """
    logger = get_logger()
    validate_options(METADATA, options)

    run_env = merge_run_env(options)
    if should_skip(METADATA, run_env):
        return skip_run(METADATA, options)

    ensure_platform(METADATA)

    settings = options.settings
    model = resolve_model(options.model, settings, run_env)
    run_env = apply_env_defaults(run_env, model)
    mode = resolve_run_mode(settings, run_env)
    mcp_config_files = resolve_mcp_config_files(settings, run_env)
    binary = resolve_binary(METADATA, settings, run_env)
    plain_logs = plain_logs_enabled(run_env)

    usage = UsageTracker(METADATA.id, options.on_usage)
    sinks = options.sinks
    sinks.on_usage = usage

    normalizer: StreamNormalizer
    if mode == WIRE_MODE:
        normalizer = WireModeNormalizer(
            options.prompt, options.working_dir, sinks, plain_logs=plain_logs
        )
        spec = ProcessSpec(
            command=binary,
            args=tuple(build_wire_args(options.working_dir, model, mcp_config_files)),
            cwd=options.working_dir,
            env=run_env,
            keep_input_open=True,
            timeout=options.timeout or settings.timeout,
            cancel_token=options.cancel_token,
        )
    else:
        normalizer = PrintModeNormalizer(sinks, plain_logs=plain_logs)
        spec = ProcessSpec(
            command=binary,
            args=tuple(build_print_args(options.prompt, options.working_dir, model, mcp_config_files)),
            cwd=options.working_dir,
            env=run_env,
            timeout=options.timeout or settings.timeout,
            cancel_token=options.cancel_token,
        )
    normalizer.source = METADATA.label

    logger.debug(
        f"[{METADATA.id}] mode={mode} model={model or 'default'} "
        f"prompt_length={len(options.prompt)} mcp_configs={len(mcp_config_files)}"
    )
    announce(METADATA, normalizer)

    result = await execute(METADATA, spec, normalizer)
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
