"""Worker thread logic for handling individual client connections."""

import logging
import socket
import ssl
import threading
from dataclasses import dataclass
from typing import Optional

from spa_server.bootstrap.config import ALLOWED_METHODS, MAX_BODY_BYTES, ServerConfig
from spa_server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    clear_correlation_id,
    correlation_id_from_headers,
    generate_correlation_id,
    set_correlation_id,
)
from spa_server.domain.http_types import Handler, HttpRequest, ResponseWriter
from spa_server.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
    internal_error_response,
)
from spa_server.lifecycle.state import ServerLifecycle
from spa_server.pipeline.access_log import with_access_log
from spa_server.pipeline.io import receive_request, send_response
from spa_server.pipeline.router import route_request
from spa_server.pipeline.validation import RequestEntityTooLarge, validate_request
from spa_server.transport.context import WorkerContext
from spa_server.transport.response_writer import SocketResponseWriter

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.transport.worker"), {}
)


def build_request_handler(
    config: ServerConfig, lifecycle: Optional[ServerLifecycle] = None
) -> Handler:
    """Compose validation and routing behind the access logger."""

    def dispatch(request: HttpRequest, writer: ResponseWriter) -> None:
        response = validate_request(
            request, ALLOWED_METHODS, config.security_headers
        )
        if response is None:
            try:
                response = route_request(request, config)
            except Exception:  # pylint: disable=broad-except
                WORKER_LOGGER.error(
                    "Unhandled error while routing request",
                    extra={"event": "handler_error", "route": request.path},
                    exc_info=True,
                )
                response = internal_error_response(request, config.security_headers)
        if lifecycle is not None and lifecycle.is_draining():
            response.close_connection = True
        send_response(writer, response, head_only=request.method == "HEAD")

    return with_access_log(dispatch)


def _reject(
    client_socket: socket.socket, config: ServerConfig, response_kind: str
) -> None:
    if response_kind == "too_large":
        response = entity_too_large_response(config.security_headers)
    else:
        response = bad_request_response(None, config.security_headers)
    send_response(SocketResponseWriter(client_socket, config.write_timeout), response)


def _read_request_with_validation(
    client_socket: socket.socket,
    buffer: bytes,
    client_addr_str: str,
    context: WorkerContext,
    first_byte_timeout: float,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read a request from the socket while enforcing size and format limits."""
    lifecycle = context.lifecycle
    try:
        request, buffer = receive_request(
            client_socket,
            buffer,
            first_byte_timeout=first_byte_timeout,
            read_timeout=context.config.read_timeout,
            on_request_start=lambda: lifecycle.mark_active(client_socket),
        )
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Rejecting request with oversized body",
            extra={
                "event": "body_size_exceeded",
                "client": client_addr_str,
                "limit": MAX_BODY_BYTES,
            },
        )
        _reject(client_socket, context.config, "too_large")
        return None, b"", True
    except ValueError:
        WORKER_LOGGER.warning(
            "Rejecting malformed request",
            extra={"event": "malformed_request", "client": client_addr_str},
        )
        _reject(client_socket, context.config, "malformed")
        return None, b"", True

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected or went idle",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
        return None, buffer, True
    return request, buffer, False


def _establish_tls(
    client_socket: socket.socket, context: WorkerContext, client_addr_str: str
) -> Optional[socket.socket]:
    """Run the server-side handshake, bounded by the read timeout."""
    if context.tls_context is None:
        return client_socket
    client_socket.settimeout(context.config.read_timeout)
    try:
        return context.tls_context.wrap_socket(client_socket, server_side=True)
    except (ssl.SSLError, OSError) as error:
        WORKER_LOGGER.warning(
            "TLS handshake failed",
            extra={
                "event": "tls_handshake_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
        return None


@dataclass
class _WorkerResources:
    thread: threading.Thread
    client_socket: socket.socket
    client_addr_str: str


def _cleanup_worker(lifecycle: ServerLifecycle, resources: _WorkerResources) -> None:
    lifecycle.release_connection(resources.client_socket)
    lifecycle.cleanup_worker(resources.thread)

    try:
        resources.client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    resources.client_socket.close()

    WORKER_LOGGER.debug(
        "Connection closed",
        extra={"event": "socket_closed", "client": resources.client_addr_str},
    )
    clear_correlation_id()


def _serve_connection(
    connection: socket.socket, context: WorkerContext, client_addr_str: str
) -> None:
    lifecycle = context.lifecycle
    config = context.config
    buffer = b""
    first_byte_timeout = config.read_timeout
    while True:
        set_correlation_id(generate_correlation_id())

        request, buffer, should_terminate = _read_request_with_validation(
            connection, buffer, client_addr_str, context, first_byte_timeout
        )
        if should_terminate or request is None:
            break
        first_byte_timeout = config.idle_timeout

        set_correlation_id(correlation_id_from_headers(request.headers))
        request.client = client_addr_str
        WORKER_LOGGER.debug(
            "Request received",
            extra={
                "event": "request_line_parsed",
                "method": request.method,
                "route": request.path,
            },
        )

        writer = SocketResponseWriter(connection, config.write_timeout)
        context.handler(request, writer)
        clear_correlation_id()

        if writer.close_required or not lifecycle.mark_idle(connection):
            break


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until the connection is closed."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    lifecycle = context.lifecycle
    resources = _WorkerResources(
        threading.current_thread(), client_socket, client_addr_str
    )

    try:
        connection = _establish_tls(client_socket, context, client_addr_str)
        if connection is None:
            return
        resources.client_socket = connection
        lifecycle.track_connection(connection)
        _serve_connection(connection, context, client_addr_str)
    except (
        ConnectionError,
        TimeoutError,
        OSError,
        UnicodeDecodeError,
    ) as error:
        WORKER_LOGGER.error(
            "Connection failed",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Worker failed unexpectedly",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        _cleanup_worker(lifecycle, resources)
