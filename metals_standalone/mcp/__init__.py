"""Discovery and health checks for the MCP endpoint Metals exposes."""

from .monitor import CONFIG_LOCATIONS, McpMonitor

__all__ = ["CONFIG_LOCATIONS", "McpMonitor"]
