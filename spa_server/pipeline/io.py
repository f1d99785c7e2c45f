"""HTTP Input/Output operations."""

import logging
import socket
import time
import urllib.parse
from email.utils import formatdate
from http import HTTPStatus
from typing import Callable, Optional, Tuple

from spa_server.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES
from spa_server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
)
from spa_server.domain.http_types import HttpRequest, HttpResponse, ResponseWriter
from spa_server.pipeline.validation import RequestEntityTooLarge

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("spa_server.io"), {})

MAX_HEADER_BYTES = 1024 * 1024
RECV_SIZE = 4096
BODYLESS_STATUSES = {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}


def _recv_with_deadline(client_socket: socket.socket, deadline_ns: int) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError("Request deadline exceeded")
    timeout_seconds = remaining_ns / 1_000_000_000
    client_socket.settimeout(timeout_seconds)
    return client_socket.recv(RECV_SIZE)


def _recv(client_socket: socket.socket, deadline_ns: Optional[int]) -> bytes:
    if deadline_ns is None:
        return client_socket.recv(RECV_SIZE)
    return _recv_with_deadline(client_socket, deadline_ns)


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            continue
        parsed[name.lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Parse the HTTP method, decoded path and protocol version."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if not method or not version.startswith("HTTP/"):
        raise ValueError("Invalid request line")

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path) or "/"
    return method, path, version


def determine_content_length(headers: dict[str, str]) -> int:
    """Validate and return the declared Content-Length for the request."""
    if "transfer-encoding" in headers:
        raise ValueError("Request bodies with Transfer-Encoding are not supported")
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_BODY_BYTES:
        raise RequestEntityTooLarge
    return content_length


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    first_byte_timeout: Optional[float] = None,
    read_timeout: Optional[float] = None,
    on_request_start: Optional[Callable[[], None]] = None,
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available.

    ``first_byte_timeout`` bounds the wait for a request to start; once bytes
    arrive the whole request must be read within ``read_timeout``, and
    ``on_request_start`` is called. Returns ``(None, b"")`` when the client
    goes away or stays silent.
    """
    if not buffer:
        if first_byte_timeout is not None:
            client_socket.settimeout(first_byte_timeout)
        try:
            buffer = client_socket.recv(RECV_SIZE)
        except socket.timeout:
            IO_LOGGER.debug("Connection idle timeout", extra={"event": "idle_timeout"})
            return None, b""
        if not buffer:
            return None, b""
    if on_request_start is not None:
        on_request_start()

    deadline_ns = (
        None
        if read_timeout is None
        else time.monotonic_ns() + int(read_timeout * 1_000_000_000)
    )
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Request headers too large")
        chunk = _recv(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("iso-8859-1").split("\r\n")
    method, path, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])
    content_length = determine_content_length(headers)

    while len(remainder) < content_length:
        chunk = _recv(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        remainder += chunk

    body = remainder[:content_length]
    leftover = remainder[content_length:]
    IO_LOGGER.debug("Parsed request", extra={"method": method, "route": path})
    return HttpRequest(method, path, headers, body, version=version), leftover


def send_response(
    writer: ResponseWriter, response: HttpResponse, head_only: bool = False
) -> None:
    """Serialize the response through ``writer``.

    ``head_only`` suppresses the payload while keeping the headers a GET would
    carry, as required for HEAD requests.
    """
    headers = {"Date": formatdate(usegmt=True), **response.headers}

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    has_body = response.status not in BODYLESS_STATUSES
    if has_body:
        length = (
            response.content_length
            if response.body_iter is not None
            else len(response.body)
        )
        headers["Content-Length"] = str(length or 0)
    if response.close_connection:
        headers["Connection"] = "close"

    try:
        writer.write_head(response.status, headers)
        if has_body and not head_only:
            if response.body_iter is not None:
                for chunk in response.body_iter:
                    if chunk:
                        writer.write(chunk)
            elif response.body:
                writer.write(response.body)
    finally:
        close = getattr(response.body_iter, "close", None)
        if close is not None:
            close()
    IO_LOGGER.debug(
        "Sent response",
        extra={"status_code": response.status.value, "head_only": head_only},
    )
