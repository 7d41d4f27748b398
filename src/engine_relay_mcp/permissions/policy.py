"""Permission policy documents and the updates that grant new permissions.

A policy is a JSON object stored in an environment variable:

    {"edit": "allow", "webfetch": "deny", "bash": {"*": "deny", "ls -la": "allow"}}

Top-level keys are capabilities. Pattern-scoped capabilities map patterns to
verdicts, with ``"*"`` as the wildcard. Granting never removes or rewrites
existing entries; it only adds ``allow`` entries.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import PermissionRequest

OPENCODE_POLICY_ENV = "OPENCODE_PERMISSION"

# Capabilities whose verdicts are keyed by command pattern
PATTERN_SCOPED_CAPABILITIES = frozenset({"bash"})


@dataclass
class PolicyUpdate:
    """Environment changes that grant a permission, plus a one-line summary."""

    env_delta: dict[str, str]
    summary: str


def parse_policy(raw: Optional[str]) -> dict[str, Any]:
    """Parse a serialized policy; anything but a JSON object reads as empty."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return dict(parsed) if isinstance(parsed, dict) else {}


def normalize_capability(request: PermissionRequest) -> Optional[str]:
    if request.capability:
        return request.capability
    meta_type = request.metadata.get("type")
    return meta_type if isinstance(meta_type, str) and meta_type else None


def normalize_patterns(request: PermissionRequest) -> list[str]:
    """Patterns a grant applies to; ``["*"]`` when the request names none."""
    for source in (request.pattern, request.metadata.get("pattern")):
        if isinstance(source, str) and source:
            return [source]
        if isinstance(source, (list, tuple)):
            patterns = [value for value in source if isinstance(value, str) and value]
            if patterns:
                return patterns
    return ["*"]


def grant_patterns(policy: dict[str, Any], capability: str, patterns: list[str]) -> dict[str, Any]:
    """Return a copy of policy with capability allowed for each pattern."""
    merged = dict(policy)
    existing = merged.get(capability)
    if isinstance(existing, dict):
        scoped = dict(existing)
    elif isinstance(existing, str):
        # A bare verdict is the wildcard default for every pattern
        scoped = {"*": existing}
    else:
        scoped = {}
    for pattern in patterns:
        scoped[pattern] = "allow"
    merged[capability] = scoped
    return merged


def grant_capability(policy: dict[str, Any], capability: str) -> dict[str, Any]:
    merged = dict(policy)
    merged[capability] = "allow"
    return merged


def build_opencode_permission_update(
    request: PermissionRequest,
    current_env: Optional[dict[str, str]] = None,
) -> Optional[PolicyUpdate]:
    """Compute the OPENCODE_PERMISSION change that grants request.

    Returns None when the request does not name a capability.
    """
    capability = normalize_capability(request)
    if not capability:
        return None

    raw = (current_env or {}).get(OPENCODE_POLICY_ENV) or os.environ.get(OPENCODE_POLICY_ENV)
    policy = parse_policy(raw)

    if capability in PATTERN_SCOPED_CAPABILITIES:
        patterns = normalize_patterns(request)
        policy = grant_patterns(policy, capability, patterns)
        summary = f"Allowed {capability} {', '.join(patterns)}"
    else:
        policy = grant_capability(policy, capability)
        summary = f"Allowed capability {capability}"

    return PolicyUpdate(env_delta={OPENCODE_POLICY_ENV: json.dumps(policy)}, summary=summary)
