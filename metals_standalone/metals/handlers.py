"""Handlers for server-initiated Metals/LSP calls in a headless client.

Every handler takes the message params and returns the response payload (or
None). Requests get an answer even when the handler returns None; notifications
never do.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from metals_standalone.lsp.connection import Handler

MESSAGE_TYPES = {1: "ERROR", 2: "WARN", 3: "INFO", 4: "LOG"}

# Sent in reply to workspace/configuration for the "metals" section.
METALS_WORKSPACE_SETTINGS: dict[str, Any] = {
    "startMcpServer": True,
    "isHttpEnabled": True,
    "statusBarProvider": "off",
    "inputBoxProvider": False,
    "quickPickProvider": False,
    "executeClientCommandProvider": False,
    "isExitOnShutdown": True,
}


def _params(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _message_type(params: dict[str, Any]) -> int:
    value = params.get("type")
    return value if isinstance(value, int) else 1


class MetalsHandlers:
    """Handler table a headless Metals client needs to keep the server happy."""

    def __init__(self, log: Any = None):
        self._log = log if log is not None else logger.bind(component="metals")

    def table(self) -> dict[str, Handler]:
        return {
            "window/showMessage": self.show_message,
            "window/showMessageRequest": self.show_message_request,
            "window/logMessage": self.log_message,
            "textDocument/publishDiagnostics": self.publish_diagnostics,
            "workspace/applyEdit": self.apply_edit,
            "metals/status": self.metals_status,
            "metals/executeClientCommand": self.execute_client_command,
            "client/registerCapability": self.acknowledge,
            "client/unregisterCapability": self.acknowledge,
            "window/workDoneProgress/create": self.acknowledge,
            "$/progress": self.progress,
            "workspace/configuration": self.configuration,
        }

    def show_message(self, raw: Any) -> None:
        params = _params(raw)
        type_name = MESSAGE_TYPES.get(_message_type(params), "UNKNOWN")
        self._log.info("[{}] {}", type_name, params.get("message", ""))
        return None

    def show_message_request(self, raw: Any) -> Any:
        """Log the prompt and pick the first action; there is nobody to ask."""
        params = _params(raw)
        type_name = MESSAGE_TYPES.get(_message_type(params), "UNKNOWN")
        self._log.info("[{}] {}", type_name, params.get("message", ""))
        actions = params.get("actions")
        if isinstance(actions, list) and actions:
            selected = actions[0]
            title = selected.get("title", "Unknown") if isinstance(selected, dict) else "Unknown"
            self._log.info("Auto-selecting action: {}", title)
            return selected
        return None

    def log_message(self, raw: Any) -> None:
        params = _params(raw)
        message = params.get("message", "")
        if _message_type(params) <= 2:
            self._log.warning("Metals: {}", message)
        else:
            self._log.info("Metals: {}", message)
        return None

    def publish_diagnostics(self, raw: Any) -> None:
        params = _params(raw)
        diagnostics = params.get("diagnostics")
        if isinstance(diagnostics, list) and diagnostics:
            self._log.info("Diagnostics for {}: {} issues", params.get("uri", ""), len(diagnostics))
        return None

    def apply_edit(self, raw: Any) -> dict[str, Any]:
        # Edits are acknowledged but never applied.
        return {"applied": True}

    def metals_status(self, raw: Any) -> None:
        text = _params(raw).get("text")
        if text:
            self._log.info("Metals status: {}", text)
        return None

    def execute_client_command(self, raw: Any) -> None:
        self._log.info("Client command: {}", _params(raw).get("command", ""))
        return None

    def acknowledge(self, raw: Any) -> None:
        return None

    def progress(self, raw: Any) -> None:
        return None

    def configuration(self, raw: Any) -> list[dict[str, Any]]:
        items = _params(raw).get("items")
        if not isinstance(items, list):
            return []
        configs: list[dict[str, Any]] = []
        for item in items:
            section = item.get("section") if isinstance(item, dict) else None
            configs.append(dict(METALS_WORKSPACE_SETTINGS) if section == "metals" else {})
        return configs


def default_handlers(log: Any = None) -> dict[str, Handler]:
    """Return a fresh handler table for a headless Metals session."""
    return MetalsHandlers(log=log).table()
