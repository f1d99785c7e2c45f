"""Socket-backed response writer and the observer that wraps it."""

import socket
import time
from http import HTTPStatus
from typing import Mapping, Optional

from spa_server.domain.http_types import ResponseWriter


def _reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


class SocketResponseWriter:
    """Writes one response to a client socket within a write deadline.

    Writing body bytes before any head implicitly sends ``200 OK``; such a
    response has no declared length, so it is delimited by closing the
    connection. ``close_required`` tells the worker the connection cannot be
    reused.
    """

    def __init__(
        self, client_socket: socket.socket, write_timeout: Optional[float] = None
    ) -> None:
        self._socket = client_socket
        self._deadline = (
            None if write_timeout is None else time.monotonic() + write_timeout
        )
        self.head_sent = False
        self.close_required = False

    def write_head(self, status: int, headers: Mapping[str, str]) -> None:
        if self.head_sent:
            raise RuntimeError("Response head already sent")
        if any(
            name.lower() == "connection" and value.lower() == "close"
            for name, value in headers.items()
        ):
            self.close_required = True
        lines = [f"HTTP/1.1 {int(status)} {_reason_phrase(status)}".rstrip()]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        self._send("\r\n".join(lines).encode("latin-1") + b"\r\n\r\n")
        self.head_sent = True

    def write(self, data: bytes) -> int:
        if not self.head_sent:
            self.write_head(HTTPStatus.OK, {"Connection": "close"})
        if not data:
            return 0
        self._send(data)
        return len(data)

    def _send(self, payload: bytes) -> None:
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("Write deadline exceeded")
            self._socket.settimeout(remaining)
        self._socket.sendall(payload)


class ResponseObserver:
    """Records the status and body size passing through another writer."""

    def __init__(self, inner: ResponseWriter) -> None:
        self._inner = inner
        self.status = 0
        self.bytes_written = 0

    def write_head(self, status: int, headers: Mapping[str, str]) -> None:
        self.status = int(status)
        self._inner.write_head(status, headers)

    def write(self, data: bytes) -> int:
        # the transport sends an implicit 200 when the body comes first
        if self.status == 0:
            self.status = HTTPStatus.OK.value
        written = self._inner.write(data)
        self.bytes_written += written
        return written
