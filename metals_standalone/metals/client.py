"""Metals-specific initialize payload and session wiring."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from metals_standalone import __version__
from metals_standalone.config.schema import LspConfig
from metals_standalone.lsp.connection import LspConnection
from metals_standalone.lsp.session import LspSession, SessionState
from metals_standalone.utils.exceptions import InitializationError

CLIENT_NAME = "metals-standalone-client"

# workspace/didChangeConfiguration payload that turns on the MCP server.
MCP_SETTINGS: dict[str, Any] = {"metals": {"startMcpServer": True}}


def client_capabilities() -> dict[str, Any]:
    """Capabilities of a client with no editor UI."""
    return {
        "workspace": {
            "applyEdit": True,
            "configuration": True,
            "workspaceFolders": True,
            "didChangeConfiguration": {"dynamicRegistration": False},
        },
        "textDocument": {
            "synchronization": {
                "dynamicRegistration": False,
                "willSave": False,
                "willSaveWaitUntil": False,
                "didSave": False,
            },
            "publishDiagnostics": {
                "relatedInformation": False,
                "versionSupport": False,
                "tagSupport": {"valueSet": []},
                "codeDescriptionSupport": False,
                "dataSupport": False,
            },
        },
        "window": {
            "showMessage": {"messageActionItem": {"additionalPropertiesSupport": False}},
            "showDocument": {"support": False},
            "workDoneProgress": True,
        },
        "experimental": {
            "metals": {
                "inputBoxProvider": False,
                "quickPickProvider": False,
                "executeClientCommandProvider": False,
                "statusBarProvider": "off",
                "treeViewProvider": False,
                "decorationProvider": False,
            }
        },
    }


def initialization_options() -> dict[str, Any]:
    """Metals initializationOptions: HTTP on, UI providers and BSP prompts off."""
    return {
        "compilerOptions": {
            "completionCommand": "editor.action.triggerSuggest",
            "isCompletionItemDetailEnabled": False,
            "isCompletionItemDocumentationEnabled": False,
            "overrideDefFormat": "ascii",
            "parameterHintsCommand": "editor.action.triggerParameterHints",
        },
        "debuggingProvider": False,
        "decorationProvider": False,
        "executeClientCommandProvider": False,
        "inputBoxProvider": False,
        "isExitOnShutdown": True,
        "isHttpEnabled": True,
        "quickPickProvider": False,
        "renameProvider": False,
        "statusBarProvider": "off",
        "treeViewProvider": False,
        "bloopEmbeddedServer": False,
        "automaticImportBuild": "off",
        "askToReconnect": False,
    }


def build_initialize_params(project_path: Path) -> dict[str, Any]:
    root = project_path.resolve()
    root_uri = root.as_uri()
    return {
        "processId": None,
        "clientInfo": {"name": CLIENT_NAME, "version": __version__},
        "rootUri": root_uri,
        "workspaceFolders": [{"uri": root_uri, "name": root.name}],
        "capabilities": client_capabilities(),
        "initializationOptions": initialization_options(),
    }


class MetalsClient:
    """Headless Metals language client: handshake, MCP flag, shutdown."""

    def __init__(self, project_path: Path, connection: LspConnection, config: LspConfig | None = None):
        cfg = config or LspConfig()
        self.project_path = project_path
        self.request_timeout = cfg.request_timeout
        self.session = LspSession(
            connection,
            initialize_params=lambda: build_initialize_params(project_path),
            settings=MCP_SETTINGS,
            init_timeout=cfg.init_timeout,
            shutdown_timeout=cfg.shutdown_timeout,
            configure_delay=cfg.configure_delay,
            log=logger.bind(component="metals.client"),
        )

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def server_version(self) -> str | None:
        return self.session.server_version

    async def initialize(self) -> dict[str, Any]:
        """Initialize Metals and enable its MCP server; returns server capabilities."""
        logger.info("Initializing Metals language server in {}", self.project_path)
        return await self.session.initialize()

    async def request(self, method: str, params: Any = None, timeout: float | None = None) -> Any:
        """Send a request once the session is ready, bounded by ``request_timeout``."""
        if self.state is not SessionState.READY:
            raise InitializationError(f"session is {self.state.value}")
        return await self.session.connection.request(
            method, params, timeout=self.request_timeout if timeout is None else timeout
        )

    async def shutdown(self) -> None:
        logger.info("Shutting down Metals client...")
        await self.session.shutdown()
