"""Invoke engine tool."""

from typing import Annotated, Any, Optional

from ..config import get_config
from ..engines import ENGINES, EngineRunOptions, run_engine_with_permissions
from ..engines.base import resolve_binary, should_skip
from ..errors import EngineError
from ..executor import check_binary_available
from ..executor.logging import get_logger
from ..streams import AssistantText, DisplayEvent, UsageSnapshot


def _failure(engine: str, error: str, error_kind: str, model_used: Optional[str] = None) -> dict:
    return {
        "success": False,
        "output": "",
        "error": error,
        "error_kind": error_kind,
        "engine": engine,
        "model_used": model_used,
        "usage": None,
    }


def _usage_dict(snapshot: Optional[UsageSnapshot]) -> Optional[dict[str, Any]]:
    if snapshot is None:
        return None
    return {
        "tokens_in": snapshot.tokens_in,
        "tokens_out": snapshot.tokens_out,
        "cached": snapshot.cached,
    }


async def invoke_engine(
    engine: Annotated[
        str,
        "Engine to run: 'kimi' or 'opencode'",
    ],
    prompt: Annotated[
        str,
        "The prompt to send to the engine",
    ],
    cwd: Annotated[
        str,
        "Working directory path (project root) where the engine should run",
    ],
    model: Annotated[
        Optional[str],
        "Override the configured model for this run (optional)",
    ] = None,
    timeout: Annotated[
        Optional[float],
        "Timeout in seconds for the run (optional)",
    ] = None,
) -> dict:
    """Run a coding-agent CLI once and collect its answer.

    Returns:
        A dictionary with:
        - success: Whether the run succeeded
        - output: The assistant text produced by the engine
        - error: Error message if failed
        - error_kind: Failure category (timeout, binary_not_found, ...) if failed
        - engine: The engine that was invoked
        - model_used: The model passed to the engine, if any
        - usage: Last token usage snapshot reported by the engine, if any
    """
    logger = get_logger()

    if engine not in ENGINES:
        available = ", ".join(ENGINES)
        return _failure(engine, f"Unknown engine: '{engine}'. Available: {available}", "unknown_engine")

    config = get_config()
    settings = config.engine(engine)
    metadata = ENGINES[engine].metadata

    if not should_skip(metadata, settings.env):
        available, message = check_binary_available(
            resolve_binary(metadata, settings, settings.env), metadata.install_hint
        )
        if not available:
            return _failure(engine, message, "binary_not_found")

    assistant_text: list[str] = []
    transcript: list[str] = []

    def on_event(event: DisplayEvent) -> None:
        if isinstance(event, AssistantText):
            assistant_text.append(event.text)

    options = EngineRunOptions(
        prompt=prompt,
        working_dir=cwd,
        model=model,
        on_data=transcript.append,
        on_event=on_event,
        timeout=timeout,
        settings=settings,
    )

    logger.info(f"[{engine}] ▶️ invoke_engine cwd={cwd}")
    try:
        result = await run_engine_with_permissions(
            engine, options, max_retries=config.max_permission_retries
        )
    except EngineError as e:
        logger.error(f"[{engine}] ❌ {e.kind}: {e}")
        return _failure(engine, str(e), e.kind, model or settings.model)
    except ValueError as e:
        return _failure(engine, str(e), "invalid_request", model or settings.model)
    except Exception as e:
        logger.exception(f"[{engine}] Unexpected error")
        return _failure(engine, str(e), "unexpected_error", model or settings.model)

    output = "".join(assistant_text) or "".join(transcript)
    return {
        "success": True,
        "output": output,
        "error": None,
        "error_kind": None,
        "engine": engine,
        "model_used": result.model_used,
        "usage": _usage_dict(result.usage),
    }
