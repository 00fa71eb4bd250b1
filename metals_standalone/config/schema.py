"""Configuration schema using Pydantic.

Persisted (optionally) to ~/.metals-standalone/config.json; every field can be
overridden from the environment, e.g. METALS_LSP__INIT_TIMEOUT=300.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class LspConfig(BaseModel):
    """Protocol engine timeouts."""
    init_timeout: float = 120.0  # initialize request
    shutdown_timeout: float = 10.0  # shutdown request; exit is sent regardless
    configure_delay: float = 0.5  # pause between initialized and didChangeConfiguration
    request_timeout: float = 30.0


class LauncherConfig(BaseModel):
    """How the Metals process is found and stopped."""
    metals_version: str = "1.6.2"
    java_home: str | None = None  # falls back to $JAVA_HOME, then `java` on PATH
    server_command: list[str] = Field(default_factory=list)  # explicit command, skips discovery
    kill_grace: float = 1.0  # seconds between terminate and kill


class McpConfig(BaseModel):
    """MCP endpoint discovery and health polling."""
    wait_timeout: float = 60.0
    poll_interval: float = 1.0
    health_interval: float = 30.0
    connect_timeout: float = 5.0


class Config(BaseSettings):
    """Root configuration for metals-standalone."""
    lsp: LspConfig = Field(default_factory=LspConfig)
    launcher: LauncherConfig = Field(default_factory=LauncherConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)

    model_config = ConfigDict(
        env_prefix="METALS_",
        env_nested_delimiter="__",
    )
