"""Engine Relay MCP server: runs coding-agent CLIs and normalizes their output."""

__version__ = "0.1.0"
