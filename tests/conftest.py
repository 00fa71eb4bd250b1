"""Pytest hooks and fixtures."""

from __future__ import annotations

import asyncio
import json
import shutil
from typing import Any

import pytest

from metals_standalone.lsp.framing import FrameDecoder


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "requires_metals: needs a real Metals installation (cs/coursier or metals on PATH)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip requires_metals tests when no Metals launcher is available."""
    if shutil.which("cs") or shutil.which("coursier") or shutil.which("metals"):
        return
    skip = pytest.mark.skip(reason="Metals is not installed")
    for item in items:
        if "requires_metals" in item.keywords:
            item.add_marker(skip)


class FakeWriter:
    """Collects framed bytes written by an LspConnection."""

    def __init__(self, fail_with: Exception | None = None):
        self.buffer = bytearray()
        self.closed = False
        self.fail_with = fail_with
        self._decoder = FrameDecoder()
        self._messages: list[dict[str, Any]] = []
        self._arrived = asyncio.Event()

    def write(self, data: bytes) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.buffer.extend(data)
        for body in self._decoder.feed(data):
            self._messages.append(json.loads(body.decode("utf-8")))
        self._arrived.set()

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    @property
    def messages(self) -> list[dict[str, Any]]:
        return list(self._messages)

    async def wait_for(self, count: int, timeout: float = 2.0) -> list[dict[str, Any]]:
        """Wait until at least ``count`` messages have been written."""

        async def _wait() -> None:
            while len(self._messages) < count:
                self._arrived.clear()
                await self._arrived.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self.messages


@pytest.fixture
def fake_writer() -> FakeWriter:
    return FakeWriter()
