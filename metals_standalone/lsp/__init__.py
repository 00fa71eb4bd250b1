"""JSON-RPC protocol engine for talking to a language server over stdio."""

from .connection import ConnectionState, Handler, LspConnection, PendingRequest
from .framing import FrameDecoder, FramingError, encode_frame, parse_content_length
from .protocol import (
    INTERNAL_ERROR,
    MessageShapeError,
    Notification,
    Request,
    Response,
    RpcError,
    parse_message,
)
from .session import LspSession, SessionState

__all__ = [
    "ConnectionState",
    "Handler",
    "LspConnection",
    "PendingRequest",
    "FrameDecoder",
    "FramingError",
    "encode_frame",
    "parse_content_length",
    "INTERNAL_ERROR",
    "MessageShapeError",
    "Notification",
    "Request",
    "Response",
    "RpcError",
    "parse_message",
    "LspSession",
    "SessionState",
]
