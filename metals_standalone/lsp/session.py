"""Session lifecycle on top of an LspConnection: initialize handshake and shutdown."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Union

from loguru import logger

from metals_standalone.lsp.connection import LspConnection
from metals_standalone.utils.exceptions import (
    ConnectionClosedError,
    InitializationError,
    LspResponseError,
    RequestTimeoutError,
)

InitializeParams = Union[dict[str, Any], Callable[[], dict[str, Any]]]


class SessionState(str, Enum):
    NOT_STARTED = "not-started"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"
    FAILED = "failed"


class LspSession:
    """Drives NOT_STARTED -> INITIALIZING -> READY -> SHUTTING_DOWN -> TERMINATED.

    ``settings`` is sent once as ``workspace/didChangeConfiguration`` right after
    the ``initialized`` notification.
    """

    def __init__(
        self,
        connection: LspConnection,
        *,
        initialize_params: InitializeParams,
        settings: dict[str, Any] | None = None,
        init_timeout: float = 120.0,
        shutdown_timeout: float = 10.0,
        configure_delay: float = 0.5,
        log: Any = None,
    ):
        self._connection = connection
        self._initialize_params = initialize_params
        self._settings = settings
        self._init_timeout = init_timeout
        self._shutdown_timeout = shutdown_timeout
        self._configure_delay = configure_delay
        self._log = log if log is not None else logger.bind(component="lsp.session")
        self._state = SessionState.NOT_STARTED
        self._handshake: asyncio.Future | None = None
        self._shutdown: asyncio.Future | None = None
        self.capabilities: dict[str, Any] = {}
        self.server_info: dict[str, Any] = {}

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connection(self) -> LspConnection:
        return self._connection

    @property
    def server_version(self) -> str | None:
        version = self.server_info.get("version")
        return str(version) if version else None

    async def initialize(self) -> dict[str, Any]:
        """Run the handshake once; later calls return the same outcome without traffic."""
        if self._state is SessionState.READY:
            self._log.info("Already initialized, returning success")
            return self.capabilities
        if self._state is SessionState.FAILED:
            raise InitializationError("initialize handshake already failed")
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.TERMINATED):
            raise InitializationError(f"session is {self._state.value}")
        if self._handshake is None:
            self._handshake = asyncio.ensure_future(self._run_handshake())
        return await asyncio.shield(self._handshake)

    def _fail(self) -> None:
        if self._state is SessionState.INITIALIZING:
            self._state = SessionState.FAILED

    async def _run_handshake(self) -> dict[str, Any]:
        self._state = SessionState.INITIALIZING
        params = self._initialize_params() if callable(self._initialize_params) else self._initialize_params
        self._log.info("Sending initialize request")
        try:
            result = await self._connection.request("initialize", params, timeout=self._init_timeout)
        except RequestTimeoutError:
            self._fail()
            self._log.error("Initialize request timed out after {}s", self._init_timeout)
            raise
        except (LspResponseError, ConnectionClosedError) as exc:
            self._fail()
            self._log.error("Initialize request failed: {}", exc)
            raise InitializationError(f"initialize request failed: {exc.message}") from exc

        if not isinstance(result, dict) or not isinstance(result.get("capabilities"), dict):
            self._fail()
            self._log.error("Initialize response has no capabilities: {}", result)
            raise InitializationError("initialize response has no capabilities", details={"result": result})

        self.capabilities = result["capabilities"]
        server_info = result.get("serverInfo")
        self.server_info = server_info if isinstance(server_info, dict) else {}
        try:
            await self._connection.send_notification("initialized", {})
            if self._configure_delay > 0:
                await asyncio.sleep(self._configure_delay)
            if self._state is not SessionState.INITIALIZING:
                raise InitializationError(f"session is {self._state.value}")
            if self._settings is not None:
                await self._connection.send_notification(
                    "workspace/didChangeConfiguration", {"settings": self._settings}
                )
        except ConnectionClosedError as exc:
            self._fail()
            raise InitializationError(f"connection closed during handshake: {exc.message}") from exc

        if self._state is not SessionState.INITIALIZING:
            raise InitializationError(f"session is {self._state.value}")
        self._state = SessionState.READY
        self._log.info("Language server initialized ({})", self.server_info.get("name") or "unknown server")
        return self.capabilities

    async def shutdown(self) -> None:
        """Send shutdown/exit and close the connection; safe to call repeatedly."""
        if self._shutdown is None:
            self._shutdown = asyncio.ensure_future(self._run_shutdown())
        await asyncio.shield(self._shutdown)

    async def _run_shutdown(self) -> None:
        if self._state is SessionState.TERMINATED:
            return
        self._state = SessionState.SHUTTING_DOWN
        connection = self._connection
        if connection.is_open:
            self._log.info("Sending shutdown request")
            try:
                await connection.request("shutdown", None, timeout=self._shutdown_timeout)
            except RequestTimeoutError:
                self._log.warning("Shutdown request timed out after {}s", self._shutdown_timeout)
            except (LspResponseError, ConnectionClosedError) as exc:
                self._log.warning("Shutdown request failed: {}", exc)
            try:
                await connection.send_notification("exit")
            except ConnectionClosedError as exc:
                self._log.warning("Could not send exit notification: {}", exc)
        await connection.close("session shut down")
        if self._handshake is not None and not self._handshake.done():
            # Fails fast now that the connection is closed.
            await asyncio.gather(self._handshake, return_exceptions=True)
        self._state = SessionState.TERMINATED
        self._log.info("LSP session terminated")
