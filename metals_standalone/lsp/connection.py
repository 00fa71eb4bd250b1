"""LSP connection over a duplex byte stream (subprocess stdin/stdout).

One reader task decodes frames and dispatches them inline. Requests issued by
callers are correlated to responses by id through a table owned by the event
loop: it is only mutated in synchronous sections, never across an ``await``.
Writes are serialized with an ``asyncio.Lock`` so concurrent senders never
interleave a header with another frame's body.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generator, Mapping, Union

from loguru import logger

from metals_standalone.lsp.framing import FrameDecoder, encode_frame
from metals_standalone.lsp.protocol import (
    INTERNAL_ERROR,
    MessageShapeError,
    Request,
    RequestId,
    Response,
    make_error,
    make_notification,
    make_request,
    make_result,
    parse_message,
)
from metals_standalone.utils.exceptions import (
    ConnectionClosedError,
    LspResponseError,
    RequestTimeoutError,
)

Handler = Callable[[Any], Union[Any, Awaitable[Any]]]

READ_CHUNK_SIZE = 4096
IDLE_BACKOFF_SECONDS = 0.01
_PREVIEW_CHARS = 200


class ConnectionState(str, Enum):
    OPEN = "open"
    SHUTTING_DOWN = "shutting-down"
    CLOSED = "closed"


@dataclass(slots=True)
class PendingRequest:
    """Completion handle for an outgoing request; awaitable."""

    id: int
    method: str
    future: asyncio.Future

    def done(self) -> bool:
        return self.future.done()

    def __await__(self) -> Generator[Any, None, Any]:
        return self.future.__await__()


def _preview(text: str) -> str:
    if len(text) > _PREVIEW_CHARS:
        return text[:_PREVIEW_CHARS] + "..."
    return text


def _consume_exception(future: asyncio.Future) -> None:
    # Abandoned handles (timed out callers) are failed at termination; mark the
    # exception retrieved so asyncio does not report it at GC time.
    if not future.cancelled():
        future.exception()


class LspConnection:
    """JSON-RPC endpoint bound to one language-server process."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        handlers: Mapping[str, Handler] | None = None,
        *,
        log: Any = None,
        read_chunk_size: int = READ_CHUNK_SIZE,
        idle_backoff: float = IDLE_BACKOFF_SECONDS,
    ):
        self._reader = reader
        self._writer = writer
        self._handlers: dict[str, Handler] = dict(handlers or {})
        self._log = log if log is not None else logger.bind(component="lsp")
        self._decoder = FrameDecoder(log=self._log)
        self._read_chunk_size = read_chunk_size
        self._idle_backoff = idle_backoff
        self._last_id = 0
        self._pending: dict[RequestId, PendingRequest] = {}
        self._write_lock = asyncio.Lock()
        self._state = ConnectionState.OPEN
        self._close_reason: str | None = None
        self._closed = asyncio.Event()
        self._reader_task: asyncio.Task | None = None
        self._handler_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is not ConnectionState.CLOSED

    @property
    def close_reason(self) -> str | None:
        return self._close_reason

    def pending_ids(self) -> list[RequestId]:
        return list(self._pending)

    def on_method(self, method: str, handler: Handler) -> None:
        """Register a handler for a server-initiated method (only before start)."""
        if self._reader_task is not None:
            raise RuntimeError("handlers cannot change once the connection has started")
        self._handlers[method] = handler

    def start(self) -> asyncio.Task:
        """Start the reader task; calling it again returns the same task."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._read_loop(), name="lsp-reader")
            self._log.info("LSP message reader started")
        return self._reader_task

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # -- writing ---------------------------------------------------------------

    async def send(self, message: dict[str, Any]) -> None:
        """Write one framed message; raises ConnectionClosedError once closed."""
        if self._state is ConnectionState.CLOSED:
            raise ConnectionClosedError(self._close_reason or "connection closed")
        frame = encode_frame(message)
        async with self._write_lock:
            if self._state is ConnectionState.CLOSED:
                raise ConnectionClosedError(self._close_reason or "connection closed")
            try:
                self._writer.write(frame)
                await self._writer.drain()
            except (ConnectionError, OSError) as exc:
                self._log.error("Failed to send LSP message: {}", exc)
                self._terminate(f"write failed: {exc}")
                raise ConnectionClosedError(f"write failed: {exc}") from exc

    async def send_request(self, method: str, params: Any = None) -> PendingRequest:
        """Register a pending entry, then write the request frame."""
        self._last_id += 1
        request_id = self._last_id
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        pending = PendingRequest(id=request_id, method=method, future=future)
        self._pending[request_id] = pending
        self._log.debug("Sending LSP request {} (id: {})", method, request_id)
        try:
            await self.send(make_request(request_id, method, params))
        except BaseException:
            self._pending.pop(request_id, None)
            if not future.done():
                future.cancel()
            raise
        return pending

    async def request(self, method: str, params: Any = None, timeout: float | None = None) -> Any:
        """Send a request and wait for its result.

        On timeout the pending entry is left in place; it is cleaned up when the
        connection terminates or by ``discard_pending``.
        """
        pending = await self.send_request(method, params)
        if timeout is None:
            return await pending.future
        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), timeout)
        except asyncio.TimeoutError as exc:
            self._log.warning("LSP request {} (id: {}) timed out after {}s", method, pending.id, timeout)
            raise RequestTimeoutError(method, pending.id, timeout) from exc

    async def send_notification(self, method: str, params: Any = None) -> None:
        self._log.debug("Sending LSP notification {}", method)
        await self.send(make_notification(method, params))

    def discard_pending(self, request_id: RequestId) -> bool:
        """Drop a pending entry and cancel its handle. Returns False if unknown."""
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        if not pending.future.done():
            pending.future.cancel()
        return True

    # -- reading ---------------------------------------------------------------

    async def _read_loop(self) -> None:
        reason = "stream closed"
        try:
            while self._state is not ConnectionState.CLOSED:
                chunk = await self._reader.read(self._read_chunk_size)
                if not chunk:
                    if self._reader.at_eof():
                        self._log.warning("End of stream from language server")
                        break
                    await asyncio.sleep(self._idle_backoff)
                    continue
                for body in self._decoder.feed(chunk):
                    await self._handle_body(body)
        except asyncio.CancelledError:
            reason = self._close_reason or "connection closed"
            raise
        except (ConnectionError, OSError) as exc:
            self._log.error("Error reading from language server: {}", exc)
            reason = f"read failed: {exc}"
        except Exception as exc:
            self._log.exception("LSP reader failed: {}", exc)
            reason = f"reader failed: {type(exc).__name__}: {exc}"
        finally:
            self._terminate(reason)

    async def _handle_body(self, body: bytes) -> None:
        try:
            text = body.decode("utf-8")
            payload = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            self._log.error("Failed to parse LSP message ({} bytes): {}", len(body), exc)
            return
        self._log.debug("LSP message received: {}", _preview(text))
        try:
            await self._dispatch(payload)
        except Exception as exc:
            self._log.exception("Error dispatching LSP message {}: {}", _preview(text), exc)

    async def _dispatch(self, payload: Any) -> None:
        try:
            message = parse_message(payload)
        except MessageShapeError as exc:
            self._log.warning("Discarding malformed LSP message: {} ({})", exc, _preview(json.dumps(payload)))
            return
        if isinstance(message, Response):
            self._resolve(message)
            return
        await self._handle_incoming(message)

    def _resolve(self, response: Response) -> None:
        pending = self._pending.pop(response.id, None) if response.id is not None else None
        if pending is None:
            self._log.warning("Dropping response for unknown request id {}", response.id)
            return
        if pending.future.done():
            return
        if response.error is not None:
            err = response.error
            self._log.error("LSP request {} (id: {}) failed: {}", pending.method, pending.id, err.message)
            pending.future.set_exception(LspResponseError(pending.method, err.code, err.message, err.data))
        else:
            self._log.debug("LSP request {} (id: {}) completed", pending.method, pending.id)
            pending.future.set_result(response.result)

    async def _handle_incoming(self, message: Any) -> None:
        is_request = isinstance(message, Request)
        handler = self._handlers.get(message.method)
        if handler is None:
            if is_request:
                self._log.warning("Unhandled request {} (id: {}); answering with null", message.method, message.id)
                await self._reply(message.id, None)
            else:
                self._log.debug("Ignoring unhandled notification {}", message.method)
            return
        if inspect.iscoroutinefunction(handler):
            task = asyncio.create_task(self._run_async_handler(message, handler), name=f"lsp-handler:{message.method}")
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_tasks.discard)
            return
        try:
            result = handler(message.params)
        except Exception as exc:
            self._log.error("Error handling {}: {}", message.method, exc)
            if is_request:
                await self._reply_error(message.id, str(exc) or type(exc).__name__)
            return
        if is_request:
            await self._reply(message.id, result)

    async def _run_async_handler(self, message: Any, handler: Handler) -> None:
        is_request = isinstance(message, Request)
        try:
            result = await handler(message.params)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._log.error("Error handling {}: {}", message.method, exc)
            if is_request:
                await self._reply_error(message.id, str(exc) or type(exc).__name__)
            return
        if is_request:
            await self._reply(message.id, result)

    async def _reply(self, request_id: RequestId, result: Any) -> None:
        try:
            await self.send(make_result(request_id, result))
        except (TypeError, ValueError) as exc:
            self._log.error("Cannot encode result for request {}: {}", request_id, exc)
            await self._reply_error(request_id, f"result is not JSON serializable: {exc}")
        except ConnectionClosedError as exc:
            self._log.debug("Could not answer request {}: {}", request_id, exc)

    async def _reply_error(self, request_id: RequestId, message: str) -> None:
        try:
            await self.send(make_error(request_id, INTERNAL_ERROR, message))
        except ConnectionClosedError as exc:
            self._log.debug("Could not answer request {}: {}", request_id, exc)

    # -- lifecycle -------------------------------------------------------------

    def _terminate(self, reason: str) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        self._close_reason = reason
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(ConnectionClosedError(reason))
        if pending:
            self._log.warning("Connection closed ({}); failed {} pending request(s)", reason, len(pending))
        else:
            self._log.info("Connection closed ({})", reason)
        self._closed.set()

    async def close(self, reason: str = "connection closed") -> None:
        """Close both directions of the stream and fail every pending request."""
        if self._state is ConnectionState.OPEN:
            self._state = ConnectionState.SHUTTING_DOWN
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            self._log.debug("Error closing LSP writer: {}", exc)
        self._terminate(reason)
        current = asyncio.current_task()
        tasks = [t for t in (self._reader_task, *self._handler_tasks) if t is not None and t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
