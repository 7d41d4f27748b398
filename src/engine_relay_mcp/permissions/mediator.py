"""Interactive resolution of engine permission requests."""

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from rich.prompt import Prompt

from ..errors import PermissionRequest, PermissionRequiredError, PolicyUnresolvableError
from ..executor.logging import get_logger
from .policy import OPENCODE_POLICY_ENV, PolicyUpdate, build_opencode_permission_update

PolicyBuilder = Callable[[PermissionRequest, Optional[dict[str, str]]], Optional[PolicyUpdate]]
PromptFn = Callable[[str, dict[str, str]], str]

CHOICES = {
    "once": "Grant permission for the current command only.",
    "always": "Remember this approval for the current session.",
    "reject": "Cancel the current operation.",
}


@dataclass
class PermissionDecision:
    outcome: str  # "allow" or "reject"
    scope: str = "once"  # "once" or "always"
    env_delta: dict[str, str] = field(default_factory=dict)
    note: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == "allow"


def ask_with_rich(message: str, choices: dict[str, str]) -> str:
    """Blocking terminal prompt; run it off the event loop."""
    lines = [message]
    lines.extend(f"  [bold]{name}[/bold]: {description}" for name, description in choices.items())
    return Prompt.ask("\n".join(lines), choices=list(choices), default="once")


class PermissionMediator:
    """Turns a PermissionRequiredError into an allow/reject decision.

    Policy builders are registered per engine id. Approvals with the "always"
    scope are remembered in a per-engine session env for the life of the
    mediator.
    """

    def __init__(
        self,
        policy_builders: Optional[dict[str, PolicyBuilder]] = None,
        *,
        is_interactive: Optional[Callable[[], bool]] = None,
        prompt: Optional[PromptFn] = None,
    ):
        if policy_builders is None:
            policy_builders = {"opencode": build_opencode_permission_update}
        self.policy_builders = dict(policy_builders)
        self._session_env: dict[str, dict[str, str]] = {}
        self._is_interactive = is_interactive or sys.stdout.isatty
        self._prompt = prompt or ask_with_rich
        self._logger = get_logger()

    def get_session_env(self, engine: str) -> Optional[dict[str, str]]:
        stored = self._session_env.get(engine)
        return dict(stored) if stored is not None else None

    def _remember(self, engine: str, delta: dict[str, str]) -> None:
        if not delta:
            return
        self._session_env[engine] = {**self._session_env.get(engine, {}), **delta}

    async def handle(
        self,
        error: PermissionRequiredError,
        *,
        engine: str,
        working_dir: str,
        current_env: Optional[dict[str, str]] = None,
    ) -> PermissionDecision:
        """Resolve error into a decision.

        Raises:
            PolicyUnresolvableError: No policy builder for engine, the request
                cannot be expressed as a policy, or there is no terminal to ask.
        """
        builder = self.policy_builders.get(engine)
        update = builder(error.request, current_env) if builder else None
        if update is None:
            raise PolicyUnresolvableError(
                f"Permission request for {engine} cannot be auto-resolved. "
                "Please configure the engine manually or update your policy."
            )

        description = error.request.describe()
        if not self._is_interactive():
            raise PolicyUnresolvableError(
                f"Permission required: {description}. "
                f"Re-run in an interactive terminal or preconfigure {OPENCODE_POLICY_ENV}."
            )

        self._logger.info(f"[{engine}] 🔒 Asking for permission: {description} (cwd={working_dir})")
        choice = await asyncio.to_thread(self._prompt, f"Allow {description}?", CHOICES)

        if choice not in ("once", "always"):
            self._logger.info(f"[{engine}] ❌ Permission rejected: {description}")
            return PermissionDecision(outcome="reject")

        if choice == "always":
            self._remember(engine, update.env_delta)

        self._logger.info(f"[{engine}] ✅ Permission granted ({choice}): {update.summary}")
        return PermissionDecision(
            outcome="allow",
            scope=choice,
            env_delta=dict(update.env_delta),
            note=update.summary,
        )


# Global mediator instance (singleton)
_mediator: Optional[PermissionMediator] = None


def get_mediator() -> PermissionMediator:
    """Get or create the session-wide mediator."""
    global _mediator
    if _mediator is None:
        _mediator = PermissionMediator()
    return _mediator
