"""Engine adapters and the entry points that run them."""

import asyncio
from dataclasses import dataclass, replace
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..executor import CancellationToken
from ..executor.logging import get_logger
from ..permissions import PermissionMediator, run_with_permissions
from ..permissions.retry import DEFAULT_MAX_RETRIES
from ..streams import DisplayEvent, EventChannel
from . import kimi, opencode
from .base import EngineMetadata, EngineRunOptions, EngineRunResult


@dataclass(frozen=True)
class Engine:
    metadata: EngineMetadata
    run: Callable[[EngineRunOptions], Awaitable[EngineRunResult]]


ENGINES: dict[str, Engine] = {
    kimi.METADATA.id: Engine(kimi.METADATA, kimi.run_kimi),
    opencode.METADATA.id: Engine(opencode.METADATA, opencode.run_opencode),
}


def get_engine(engine_id: str) -> Engine:
    engine = ENGINES.get(engine_id)
    if engine is None:
        available = ", ".join(ENGINES)
        raise ValueError(f"Unknown engine: '{engine_id}'. Available: {available}")
    return engine


async def run_engine(engine_id: str, options: EngineRunOptions) -> EngineRunResult:
    """Run an engine once, without permission handling."""
    return await get_engine(engine_id).run(options)


async def run_engine_with_permissions(
    engine_id: str,
    options: EngineRunOptions,
    *,
    mediator: Optional[PermissionMediator] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> EngineRunResult:
    """Run an engine, re-running it after each permission the user grants."""
    engine = get_engine(engine_id)

    async def attempt(env: Optional[dict[str, str]]) -> EngineRunResult:
        return await engine.run(replace(options, env=env))

    return await run_with_permissions(
        attempt,
        engine=engine_id,
        working_dir=options.working_dir,
        base_env=options.env,
        mediator=mediator,
        max_retries=max_retries,
        on_status=options.on_data,
    )


async def stream_engine(
    engine_id: str,
    options: EngineRunOptions,
    *,
    mediator: Optional[PermissionMediator] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> AsyncIterator[DisplayEvent]:
    """Run an engine and yield its display events as they arrive.

    Leaving the iteration early cancels the run. Errors from the run are
    raised after the last event.
    """
    get_engine(engine_id)
    channel = EventChannel()
    token = options.cancel_token or CancellationToken()
    forward = options.on_event

    def on_event(event: DisplayEvent) -> None:
        channel.publish(event)
        if forward:
            forward(event)

    run_options = replace(options, on_event=on_event, cancel_token=token)
    task = asyncio.create_task(
        run_engine_with_permissions(engine_id, run_options, mediator=mediator, max_retries=max_retries)
    )
    task.add_done_callback(lambda _: channel.close())

    try:
        async for event in channel:
            yield event
        await task
    finally:
        if not task.done():
            get_logger().info(f"[{engine_id}] Stream closed early, cancelling run")
            token.cancel()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


__all__ = [
    "Engine",
    "ENGINES",
    "EngineMetadata",
    "EngineRunOptions",
    "EngineRunResult",
    "get_engine",
    "run_engine",
    "run_engine_with_permissions",
    "stream_engine",
]
