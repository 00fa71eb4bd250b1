"""JSON-RPC 2.0 message models used on the LSP stream."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

RequestId = Union[int, str]


@dataclass(slots=True)
class RpcError:
    """Error payload carried by an error Response."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(slots=True)
class Request:
    """Call that the other side must answer."""

    id: RequestId
    method: str
    params: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method}
        if self.params is not None:
            payload["params"] = self.params
        return payload


@dataclass(slots=True)
class Notification:
    """One-way message; never answered."""

    method: str
    params: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            payload["params"] = self.params
        return payload


@dataclass(slots=True)
class Response:
    """Answer to a Request; carries either a result or an error."""

    id: RequestId | None
    result: Any = None
    error: RpcError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        else:
            payload["result"] = self.result
        return payload


Message = Union[Request, Notification, Response]


class MessageShapeError(ValueError):
    """A decoded JSON value is not a recognisable JSON-RPC message."""


def _normalize_error(raw: Any) -> RpcError:
    row = raw if isinstance(raw, dict) else {}
    code = row.get("code")
    return RpcError(
        code=code if isinstance(code, int) else INTERNAL_ERROR,
        message=str(row.get("message") or "rpc failed"),
        data=row.get("data"),
    )


def _is_valid_id(value: Any) -> bool:
    # bool is an int subclass; true must not match request 1.
    return isinstance(value, str) or (isinstance(value, int) and not isinstance(value, bool))


def parse_message(payload: Any) -> Message:
    """Classify a decoded JSON object as Request, Notification or Response.

    Raises MessageShapeError for anything that fits none of the three shapes,
    including an id-only object with neither ``result`` nor ``error`` and an id
    that is neither an integer nor a string.
    """
    if not isinstance(payload, dict):
        raise MessageShapeError(f"expected JSON object, got {type(payload).__name__}")
    method = payload.get("method")
    has_id = "id" in payload and payload["id"] is not None
    if has_id and not _is_valid_id(payload["id"]):
        raise MessageShapeError(f"invalid id: {payload['id']!r}")
    if isinstance(method, str):
        if has_id:
            return Request(id=payload["id"], method=method, params=payload.get("params"))
        return Notification(method=method, params=payload.get("params"))
    if "method" in payload:
        raise MessageShapeError("method must be a string")
    if "error" in payload and payload["error"] is not None:
        return Response(id=payload.get("id"), error=_normalize_error(payload["error"]))
    if "result" in payload:
        if not has_id:
            raise MessageShapeError("response without id")
        return Response(id=payload["id"], result=payload["result"])
    raise MessageShapeError("message has neither method, result nor error")


def make_request(request_id: RequestId, method: str, params: Any = None) -> dict[str, Any]:
    return Request(id=request_id, method=method, params=params).to_dict()


def make_notification(method: str, params: Any = None) -> dict[str, Any]:
    return Notification(method=method, params=params).to_dict()


def make_result(request_id: RequestId, result: Any) -> dict[str, Any]:
    return Response(id=request_id, result=result).to_dict()


def make_error(request_id: RequestId | None, code: int, message: str, data: Any = None) -> dict[str, Any]:
    return Response(id=request_id, error=RpcError(code=code, message=message, data=data)).to_dict()
