"""CLI utilities for finding and checking engine executables."""

import os
import shutil
from typing import Optional


def find_binary(name: str) -> Optional[str]:
    """Find an engine executable.

    Checks the following locations in order:
    1. PATH via shutil.which(name)
    2. ~/.local/bin/<name>
    3. /usr/local/bin/<name>
    4. ~/bin/<name>

    Absolute or relative paths are accepted as-is when they are executable.

    Returns:
        Path to the executable or None if not found.
    """
    if os.sep in name:
        if os.path.isfile(name) and os.access(name, os.X_OK):
            return name
        return None

    path = shutil.which(name)
    if path:
        return path

    # Common installation locations that might not be in PATH yet
    common_paths = [
        os.path.expanduser(f"~/.local/bin/{name}"),
        f"/usr/local/bin/{name}",
        os.path.expanduser(f"~/bin/{name}"),
    ]

    for candidate in common_paths:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    return None


def check_binary_available(name: str, install_hint: str = "") -> tuple[bool, str]:
    """Check if an engine CLI is available.

    Returns:
        Tuple of (is_available, message).
    """
    path = find_binary(name)
    if path:
        return True, f"{name} found at: {path}"
    message = f"{name} CLI not found in PATH."
    if install_hint:
        message += f" Install it via: {install_hint}"
    return False, message
