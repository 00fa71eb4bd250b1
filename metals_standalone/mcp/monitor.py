"""Find the MCP endpoint Metals writes to disk and poll it over HTTP."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from metals_standalone import __version__
from metals_standalone.config.schema import McpConfig

CONFIG_LOCATIONS = (
    ".metals/mcp.json",
    ".cursor/mcp.json",
    ".vscode/mcp.json",
)
USER_AGENT = f"metals-standalone-client/{__version__}"
PROGRESS_EVERY_SECONDS = 10


class McpMonitor:
    """Watches a project for the Metals MCP config and checks the server is alive."""

    def __init__(
        self,
        project_path: Path,
        config: McpConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_path = project_path
        self.config = config or McpConfig()
        self._client = httpx.AsyncClient(
            timeout=self.config.connect_timeout,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    def find_config(self) -> Path | None:
        for location in CONFIG_LOCATIONS:
            path = self.project_path / location
            if path.exists():
                logger.debug("Found MCP config at {}", path)
                return path
        return None

    def parse_config(self, path: Path) -> dict[str, Any] | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Error reading MCP config {}: {}", path, exc)
            return None
        if not isinstance(data, dict):
            logger.error("MCP config {} is not a JSON object", path)
            return None
        return data

    @staticmethod
    def extract_url(config: dict[str, Any]) -> str | None:
        """Return the Metals server URL from an mcp.json document, if any."""
        servers = config.get("mcpServers")
        if not isinstance(servers, dict):
            servers = config.get("servers")
        if not isinstance(servers, dict):
            return None
        entry = servers.get("metals-metals")
        if not isinstance(entry, dict):
            entry = next(
                (v for k, v in servers.items() if "metals" in k.lower() and isinstance(v, dict)),
                None,
            )
        if entry is None:
            logger.debug("No metals server in MCP config")
            return None
        transport = entry.get("transport")
        url = transport.get("url") if isinstance(transport, dict) else None
        if not isinstance(url, str) or not url:
            url = entry.get("url")
        return url if isinstance(url, str) and url else None

    @staticmethod
    def base_url(url: str) -> str:
        base = url
        for suffix in ("/sse", "/mcp"):
            if base.endswith(suffix):
                base = base[: -len(suffix)]
        return base.rstrip("/")

    async def test_connection(self, url: str) -> bool:
        """GET the server root; any answer below 500 means it is up."""
        try:
            resp = await self._client.get(self.base_url(url))
        except httpx.HTTPError as exc:
            logger.debug("MCP connection test failed: {}", exc)
            return False
        return resp.status_code < 500

    def discover_url(self) -> str | None:
        path = self.find_config()
        if path is None:
            return None
        config = self.parse_config(path)
        if config is None:
            return None
        return self.extract_url(config)

    async def wait_for_server(self, timeout: float | None = None) -> str | None:
        """Poll until the configured URL answers or ``timeout`` elapses."""
        timeout = self.config.wait_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started = loop.time()
        next_progress = PROGRESS_EVERY_SECONDS
        logger.info("Waiting for MCP server to start...")
        while True:
            url = self.discover_url()
            if url is not None:
                if await self.test_connection(url):
                    logger.info("MCP server is ready at {}", url)
                    return url
                logger.debug("MCP config found but server not responding yet")
            elapsed = loop.time() - started
            if elapsed >= timeout:
                logger.warning("MCP server did not start within {}s", timeout)
                return None
            if elapsed >= next_progress:
                logger.info("Still waiting for MCP server... ({}s elapsed)", int(elapsed))
                next_progress += PROGRESS_EVERY_SECONDS
            await asyncio.sleep(min(self.config.poll_interval, max(timeout - elapsed, 0)))

    def claude_command(self, url: str) -> str:
        transport = "http" if url.endswith("/mcp") else "sse"
        return f"claude mcp add --transport {transport} {self.project_path.name}-metals {url}"

    async def monitor_health(self, url: str, interval: float | None = None) -> bool:
        """Check the server every ``interval`` seconds; returns False once it is down."""
        interval = self.config.health_interval if interval is None else interval
        while True:
            if not await self.test_connection(url):
                logger.warning("MCP server appears to be down")
                return False
            await asyncio.sleep(interval)

    async def aclose(self) -> None:
        await self._client.aclose()
