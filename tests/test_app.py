import asyncio
import io
from pathlib import Path

import pytest
from rich.console import Console

from metals_standalone import app as app_module
from metals_standalone.app import MetalsStandalone
from metals_standalone.config.schema import Config, LspConfig, McpConfig
from metals_standalone.lsp.framing import encode_frame
from metals_standalone.lsp.session import SessionState
from metals_standalone.utils.exceptions import (
    InitializationError,
    McpServerError,
    ProjectValidationError,
    ServerExitedError,
    TimeoutError,
)


class _Process:
    def __init__(self, stdin):
        self.stdout = asyncio.StreamReader()
        self.stdin = stdin
        self.returncode = None
        self.exited = asyncio.Event()

    def exit(self, code: int) -> None:
        self.returncode = code
        self.exited.set()


class _Launcher:
    def __init__(self, process: _Process):
        self.process = process
        self.stopped = False

    async def launch(self):
        return self.process

    async def wait(self):
        await self.process.exited.wait()
        return self.process.returncode

    async def stop(self):
        self.stopped = True


class _Monitor:
    def __init__(self, url: str | None, healthy: bool = False):
        self.url = url
        self.healthy = healthy
        self.closed = False

    async def wait_for_server(self):
        return self.url

    async def monitor_health(self, url: str):
        return self.healthy

    def claude_command(self, url: str) -> str:
        return f"claude mcp add --transport sse proj-metals {url}"

    async def aclose(self):
        self.closed = True


async def _answer(process: _Process, answered: set[str]) -> None:
    """Play the server side: answer initialize and shutdown."""
    handled = 0
    while True:
        messages = await process.stdin.wait_for(handled + 1, timeout=30)
        for message in messages[handled:]:
            handled += 1
            method = message.get("method")
            if method in answered and "id" in message:
                result = {"capabilities": {}, "serverInfo": {"version": "1.6.2"}} if method == "initialize" else None
                process.stdout.feed_data(encode_frame({"jsonrpc": "2.0", "id": message["id"], "result": result}))


def _config() -> Config:
    return Config(lsp=LspConfig(configure_delay=0, shutdown_timeout=0.1), mcp=McpConfig(wait_timeout=0.1))


def _app(tmp_path: Path, process: _Process, monitor: _Monitor) -> tuple[MetalsStandalone, io.StringIO]:
    out = io.StringIO()
    runner = MetalsStandalone(
        tmp_path,
        _config(),
        Console(file=out, width=200),
        launcher=_Launcher(process),
        monitor=monitor,
    )
    return runner, out


@pytest.mark.asyncio
async def test_run_prints_connection_info_and_shuts_down_in_order(tmp_path: Path, fake_writer):
    process = _Process(fake_writer)
    monitor = _Monitor("http://localhost:4000/sse")
    app, out = _app(tmp_path, process, monitor)
    server = asyncio.create_task(_answer(process, {"initialize", "shutdown"}))
    try:
        with pytest.raises(McpServerError):
            await asyncio.wait_for(app.run(), 5)
    finally:
        server.cancel()

    text = out.getvalue()
    assert "MCP server is running! (Metals v1.6.2)" in text
    assert "claude mcp add --transport sse proj-metals http://localhost:4000/sse" in text
    methods = [m.get("method") for m in fake_writer.messages]
    assert methods == ["initialize", "initialized", "workspace/didChangeConfiguration", "shutdown", "exit"]
    assert app.client.state is SessionState.TERMINATED
    assert app.launcher.stopped is True
    assert monitor.closed is True


@pytest.mark.asyncio
async def test_server_exit_during_initialize(tmp_path: Path, fake_writer):
    process = _Process(fake_writer)
    app, _ = _app(tmp_path, process, _Monitor("http://localhost:4000/sse"))

    async def crash():
        await fake_writer.wait_for(1)
        process.exit(1)

    crasher = asyncio.create_task(crash())
    with pytest.raises(ServerExitedError) as exc_info:
        await asyncio.wait_for(app.run(), 5)
    await crasher
    assert exc_info.value.returncode == 1
    assert app.launcher.stopped is True
    assert app.connection is not None and not app.connection.is_open


@pytest.mark.asyncio
async def test_server_crash_closing_stdout_reports_exit(tmp_path: Path, fake_writer):
    process = _Process(fake_writer)
    app, _ = _app(tmp_path, process, _Monitor("http://localhost:4000/sse"))

    async def crash():
        await fake_writer.wait_for(1)
        process.stdout.feed_eof()
        await asyncio.sleep(0.05)
        process.exit(7)

    crasher = asyncio.create_task(crash())
    with pytest.raises(ServerExitedError) as exc_info:
        await asyncio.wait_for(app.run(), 5)
    await crasher
    assert exc_info.value.returncode == 7
    assert isinstance(exc_info.value.__cause__, InitializationError)
    assert app.launcher.stopped is True


@pytest.mark.asyncio
async def test_closed_stdout_with_live_process_is_an_init_failure(tmp_path: Path, fake_writer, monkeypatch):
    monkeypatch.setattr(app_module, "PROCESS_EXIT_GRACE", 0.05)
    process = _Process(fake_writer)
    app, _ = _app(tmp_path, process, _Monitor("http://localhost:4000/sse"))

    async def close_stdout():
        await fake_writer.wait_for(1)
        process.stdout.feed_eof()

    closer = asyncio.create_task(close_stdout())
    with pytest.raises(InitializationError):
        await asyncio.wait_for(app.run(), 5)
    await closer
    assert app.launcher.stopped is True


@pytest.mark.asyncio
async def test_mcp_server_never_appears(tmp_path: Path, fake_writer):
    process = _Process(fake_writer)
    app, _ = _app(tmp_path, process, _Monitor(None))
    server = asyncio.create_task(_answer(process, {"initialize", "shutdown"}))
    try:
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(app.run(), 5)
    finally:
        server.cancel()
    assert [m.get("method") for m in fake_writer.messages][-2:] == ["shutdown", "exit"]


@pytest.mark.asyncio
async def test_invalid_project_fails_before_launch(tmp_path: Path, fake_writer):
    process = _Process(fake_writer)
    app, _ = _app(tmp_path / "missing", process, _Monitor(None))
    with pytest.raises(ProjectValidationError):
        await app.run()
    assert fake_writer.messages == []
    assert app.client is None
