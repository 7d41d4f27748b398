"""Permission policies, the interactive mediator and the retry loop."""

from .mediator import CHOICES, PermissionDecision, PermissionMediator, get_mediator
from .policy import (
    OPENCODE_POLICY_ENV,
    PolicyUpdate,
    build_opencode_permission_update,
    parse_policy,
)
from .retry import merge_env, run_with_permissions

__all__ = [
    "PermissionMediator",
    "PermissionDecision",
    "CHOICES",
    "get_mediator",
    "PolicyUpdate",
    "parse_policy",
    "build_opencode_permission_update",
    "OPENCODE_POLICY_ENV",
    "merge_env",
    "run_with_permissions",
]
