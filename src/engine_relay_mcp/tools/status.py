"""Status check tool."""

from ..config import get_config
from ..engines import ENGINES
from ..engines.base import resolve_binary, should_skip
from ..executor import check_binary_available


def check_status() -> dict:
    """Check the status of the MCP server and its engines.

    Returns information about:
    - Whether each engine CLI is available
    - Whether the configuration is loaded, and from where
    - The permission retry ceiling in effect
    """
    try:
        config = get_config()
        config_loaded = True
        config_error = None
    except Exception as e:
        config = None
        config_loaded = False
        config_error = str(e)

    engines = {}
    for engine_id, engine in ENGINES.items():
        settings = config.engine(engine_id) if config else None
        env = settings.env if settings else None
        binary = resolve_binary(engine.metadata, settings, env) if settings else engine.metadata.binary
        available, message = check_binary_available(binary, engine.metadata.install_hint)
        engines[engine_id] = {
            "name": engine.metadata.name,
            "available": available,
            "message": message,
            "skipped": should_skip(engine.metadata, env),
        }

    return {
        "engines": engines,
        "config_loaded": config_loaded,
        "config_error": config_error,
        "config_file": str(config.config_file) if config and config.config_file else None,
        "max_permission_retries": config.max_permission_retries if config else None,
    }
