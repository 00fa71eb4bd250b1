"""Metals-specific pieces: process launcher, initialize payload, handler table."""

from .client import MCP_SETTINGS, MetalsClient, build_initialize_params
from .handlers import MetalsHandlers, default_handlers
from .launcher import MetalsInstallation, MetalsLauncher, is_scala_project, validate_project

__all__ = [
    "MCP_SETTINGS",
    "MetalsClient",
    "build_initialize_params",
    "MetalsHandlers",
    "default_handlers",
    "MetalsInstallation",
    "MetalsLauncher",
    "is_scala_project",
    "validate_project",
]
