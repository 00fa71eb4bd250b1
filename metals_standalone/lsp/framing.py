"""Content-Length framing for the LSP byte stream."""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

HEADER_DELIMITER = b"\r\n\r\n"
HEADER_LINE_SEPARATOR = b"\r\n"
CONTENT_LENGTH = "content-length"


class FramingError(ValueError):
    """A header block without a usable Content-Length."""


def encode_frame(message: dict[str, Any]) -> bytes:
    """Serialize one message as ``Content-Length: N\\r\\n\\r\\n<UTF-8 JSON>``."""
    body = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def parse_content_length(header: bytes) -> int:
    """Return the declared body length from a header block.

    Other header lines (e.g. Content-Type) are ignored. Raises FramingError when
    the length is missing, not a decimal integer, or negative.
    """
    text = header.decode("ascii", errors="replace")
    for line in text.split("\r\n"):
        name, sep, value = line.partition(":")
        if not sep or name.strip().lower() != CONTENT_LENGTH:
            continue
        raw = value.strip()
        if not raw.isdigit():
            raise FramingError(f"invalid Content-Length value: {raw!r}")
        return int(raw)
    raise FramingError(f"missing Content-Length header: {text[:120]!r}")


class FrameDecoder:
    """Incremental decoder turning arbitrary byte chunks into frame bodies.

    The buffer holds raw bytes so that Content-Length is compared against the
    byte count, not the character count, of multi-byte UTF-8 bodies.
    """

    def __init__(self, log: Any = None) -> None:
        self._buffer = bytearray()
        self._expected: int | None = None
        self._log = log if log is not None else logger.bind(component="lsp.framing")

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        """Append ``data`` and return every frame body completed by it, in order."""
        if data:
            self._buffer.extend(data)
        bodies: list[bytes] = []
        while True:
            if self._expected is None:
                end = self._buffer.find(HEADER_DELIMITER)
                if end < 0:
                    break
                header = bytes(self._buffer[:end])
                del self._buffer[: end + len(HEADER_DELIMITER)]
                try:
                    self._expected = parse_content_length(header)
                except FramingError as exc:
                    self._log.warning("Skipping malformed LSP header: {}", exc)
                    continue
            if len(self._buffer) < self._expected:
                break
            body = bytes(self._buffer[: self._expected])
            del self._buffer[: self._expected]
            self._expected = None
            bodies.append(body)
        return bodies
