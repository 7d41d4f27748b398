"""Retry loop that re-runs an engine after each granted permission."""

from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import PermissionRejectedError, PermissionRequiredError
from ..executor.logging import get_logger
from ..streams.markers import format_status
from .mediator import PermissionMediator, get_mediator

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3


def merge_env(
    base: Optional[dict[str, str]], delta: Optional[dict[str, str]]
) -> Optional[dict[str, str]]:
    """Copy of base with delta applied. Neither argument is modified."""
    if not delta:
        return dict(base) if base is not None else None
    return {**(base or {}), **delta}


async def run_with_permissions(
    operation: Callable[[Optional[dict[str, str]]], Awaitable[T]],
    *,
    engine: str,
    working_dir: str,
    base_env: Optional[dict[str, str]] = None,
    mediator: Optional[PermissionMediator] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    on_status: Optional[Callable[[str], None]] = None,
) -> T:
    """Await operation(env), resolving permission requests between attempts.

    Each PermissionRequiredError goes through the mediator. An approval
    re-runs operation with the granted env; "always" approvals also carry
    over to every later attempt. After max_retries resolved requests the
    next PermissionRequiredError is re-raised as is.

    Raises:
        PermissionRejectedError: The user rejected a request.
        PolicyUnresolvableError: The mediator could not resolve a request.
    """
    logger = get_logger()
    mediator = mediator or get_mediator()

    session_env = mediator.get_session_env(engine)
    base = merge_env(base_env, session_env)
    attempt_env = merge_env(base, None)
    attempts = 0

    while True:
        try:
            return await operation(attempt_env)
        except PermissionRequiredError as e:
            if attempts >= max_retries:
                logger.warning(f"[{engine}] Permission retries exhausted after {attempts} attempt(s)")
                raise
            attempts += 1

            decision = await mediator.handle(
                e, engine=engine, working_dir=working_dir, current_env=attempt_env
            )
            if not decision.allowed:
                raise PermissionRejectedError(f"Permission request rejected: {e}") from e

            if decision.scope == "always":
                base = merge_env(base, decision.env_delta)
                attempt_env = merge_env(base, None)
            else:
                attempt_env = merge_env(base, decision.env_delta)

            if decision.note:
                logger.info(f"[{engine}] 🔁 {decision.note}, retrying (attempt {attempts + 1})")
                if on_status:
                    on_status(format_status(f"{decision.note} – retrying run") + "\n")
