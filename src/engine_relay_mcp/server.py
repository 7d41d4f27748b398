"""MCP Server relaying prompts to coding-agent CLIs.

This server runs engine CLIs (Kimi, OpenCode) as child processes, normalizes
their streaming output and returns the result to the MCP client.
"""

from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from .executor import get_process_registry
from .executor.logging import get_logger
from .tools import (
    check_status as check_status_impl,
    invoke_engine as invoke_engine_impl,
)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Terminate any engine processes still running when the server stops."""
    try:
        yield
    finally:
        registry = get_process_registry()
        if len(registry):
            get_logger().info(f"Shutting down with {len(registry)} running engine process(es)")
        await registry.terminate_all()


# Initialize the MCP server
mcp = FastMCP("Engine Relay", lifespan=lifespan)


@mcp.tool()
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
        "Working directory path (project root) where the engine runs. Files it creates are placed here.",
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
    """Run a coding-agent CLI once and return its answer.

    The engine's streamed output is normalized into plain text. Permission
    requests the engine cannot resolve on its own are reported as errors
    with error_kind 'policy_unresolvable'; preconfigure OPENCODE_PERMISSION
    to avoid them.

    Args:
        engine: Which engine to run.
        prompt: The prompt for the engine.
        cwd: Working directory (project root) where the engine should work.
        model: Override the configured model (optional).
        timeout: Execution timeout in seconds (optional).

    Returns:
        A dictionary with:
        - success: Whether the run succeeded
        - output: The engine's response
        - error: Error message if failed
        - error_kind: Failure category if failed
        - engine: The engine that was invoked
        - model_used: The model that was used
        - usage: Token usage reported by the engine (None if not available)
    """
    return await invoke_engine_impl(
        engine=engine,
        prompt=prompt,
        cwd=cwd,
        model=model,
        timeout=timeout,
    )


@mcp.tool()
def check_status() -> dict:
    """Check the status of the MCP server and its engines.

    Returns information about:
    - Whether each engine CLI is available
    - Whether the configuration is loaded
    - The permission retry ceiling in effect
    """
    return check_status_impl()


def main():
    """Entry point for the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
