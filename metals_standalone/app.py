"""Runs Metals with its MCP server enabled until interrupted."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable

from loguru import logger
from rich.console import Console

from metals_standalone.config.schema import Config
from metals_standalone.lsp.connection import LspConnection
from metals_standalone.mcp.monitor import McpMonitor
from metals_standalone.metals.client import MetalsClient
from metals_standalone.metals.handlers import default_handlers
from metals_standalone.metals.launcher import MetalsLauncher, validate_project
from metals_standalone.utils.exceptions import (
    ConnectionClosedError,
    InitializationError,
    LaunchError,
    McpServerError,
    ServerExitedError,
    TimeoutError as OperationTimeoutError,
)

PROCESS_EXIT_GRACE = 2.0


class MetalsStandalone:
    """Wires launcher, LSP connection, Metals session and MCP monitor together.

    Components are created in order and torn down in reverse order, whatever
    way ``run`` ends.
    """

    def __init__(
        self,
        project_path: Path,
        config: Config | None = None,
        console: Console | None = None,
        *,
        launcher: MetalsLauncher | None = None,
        monitor: McpMonitor | None = None,
    ):
        self.config = config or Config()
        self.project_path = project_path
        self.console = console or Console()
        self.launcher = launcher
        self.monitor = monitor
        self.connection: LspConnection | None = None
        self.client: MetalsClient | None = None
        self.mcp_url: str | None = None

    async def run(self) -> None:
        try:
            await self._start()
            await self._watch()
        finally:
            await self.shutdown()

    async def _start(self) -> None:
        self.console.print("🚀 Starting Metals standalone MCP client...")
        self.project_path = validate_project(self.project_path)
        if self.launcher is None:
            self.launcher = MetalsLauncher(self.project_path, self.config.launcher)
        if self.monitor is None:
            self.monitor = McpMonitor(self.project_path, self.config.mcp)

        with self.console.status("📦 Launching Metals language server...", spinner="dots"):
            process = await self.launcher.launch()
        if process.stdout is None or process.stdin is None:
            raise LaunchError("Metals stdio is unavailable")

        self.connection = LspConnection(process.stdout, process.stdin, default_handlers())
        self.connection.start()
        self.console.print("🔗 Connected to Metals LSP server")

        self.client = MetalsClient(self.project_path, self.connection, self.config.lsp)
        with self.console.status("Initializing Metals language server...", spinner="dots"):
            await self._until_exit(self.client.initialize())
        self.console.print("[green]✓[/green] Metals language server initialized")

        with self.console.status("⏳ Waiting for MCP server to start...", spinner="dots"):
            url = await self._until_exit(self.monitor.wait_for_server())
        if url is None:
            raise OperationTimeoutError("waiting for MCP server", self.config.mcp.wait_timeout)
        self.mcp_url = url
        self.print_connection_info(url)

    async def _watch(self) -> None:
        assert self.monitor is not None and self.mcp_url is not None
        healthy = await self._until_exit(self.monitor.monitor_health(self.mcp_url))
        if not healthy:
            raise McpServerError("MCP server stopped responding", self.mcp_url)

    async def _until_exit(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` but give up with ServerExitedError if Metals exits first.

        A closed stream is reported as a server exit when the process is gone
        within ``PROCESS_EXIT_GRACE`` seconds of the failure.
        """
        assert self.launcher is not None
        work = asyncio.ensure_future(awaitable)
        exited = asyncio.ensure_future(self.launcher.wait())
        try:
            await asyncio.wait({work, exited}, return_when=asyncio.FIRST_COMPLETED)
            if work.done():
                failure = None if work.cancelled() else work.exception()
                if isinstance(failure, (InitializationError, ConnectionClosedError)):
                    returncode = await self._exit_code_within(exited, PROCESS_EXIT_GRACE)
                    if returncode is not None:
                        logger.error("Metals process exited with code {}", returncode)
                        raise ServerExitedError(returncode) from failure
                return work.result()
            returncode = exited.result()
            logger.error("Metals process exited with code {}", returncode)
            raise ServerExitedError(returncode)
        finally:
            for task in (work, exited):
                task.cancel()
            await asyncio.gather(work, exited, return_exceptions=True)

    @staticmethod
    async def _exit_code_within(exited: asyncio.Future, timeout: float) -> int | None:
        try:
            return await asyncio.wait_for(asyncio.shield(exited), timeout)
        except asyncio.TimeoutError:
            return None

    def print_connection_info(self, url: str) -> None:
        assert self.monitor is not None
        version = self.client.server_version if self.client else None
        suffix = f" (Metals v{version})" if version else ""
        self.console.print()
        self.console.print(f"🎉 [bold green]MCP server is running![/bold green]{suffix}")
        self.console.print(f"URL: [cyan]{url}[/cyan]")
        self.console.print()
        self.console.print("To connect with Claude Code, run:")
        self.console.print(f"  {self.monitor.claude_command(url)}", highlight=False)
        self.console.print()
        self.console.print("[dim]Press Ctrl+C to stop the server...[/dim]")

    async def shutdown(self) -> None:
        """Stop session, connection, process and HTTP client, in that order."""
        self.console.print("🔄 Shutting down components...")
        if self.client is not None:
            try:
                await self.client.shutdown()
            except Exception as exc:
                logger.error("Error shutting down Metals client: {}", exc)
        if self.connection is not None:
            try:
                await self.connection.close("application shutdown")
            except Exception as exc:
                logger.error("Error closing LSP connection: {}", exc)
        if self.launcher is not None:
            try:
                await self.launcher.stop()
            except Exception as exc:
                logger.error("Error stopping Metals process: {}", exc)
        if self.monitor is not None:
            try:
                await self.monitor.aclose()
            except Exception as exc:
                logger.error("Error closing MCP monitor: {}", exc)
        self.console.print("👋 Goodbye!")
