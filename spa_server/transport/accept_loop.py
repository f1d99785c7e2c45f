"""Main connection acceptance loop."""

import logging
import socket
import threading

from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.domain.response_builders import draining_response
from spa_server.pipeline.io import send_response
from spa_server.transport.context import WorkerContext
from spa_server.transport.response_writer import SocketResponseWriter
from spa_server.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.transport.accept"), {}
)


def _reject_while_draining(
    client_socket: socket.socket, context: WorkerContext
) -> None:
    """Answer a connection that arrived after shutdown began, then close it."""
    try:
        # a TLS client would need a handshake first; closing is enough there
        if context.tls_context is None:
            writer = SocketResponseWriter(client_socket, context.config.write_timeout)
            send_response(writer, draining_response(context.config.security_headers))
    except OSError as error:
        ACCEPT_LOGGER.debug(
            "Failed to send draining response",
            extra={"event": "draining_reply_failed", "error_type": type(error).__name__},
        )
    finally:
        client_socket.close()


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Hand a newly accepted client connection to its own worker thread."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={"event": "client_accepted", "client": client_addr_str},
        )

    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        name=f"worker-{client_addr_str}",
        daemon=True,
    )
    context.lifecycle.register_worker(thread)
    thread.start()


def accept_connections(server_socket: socket.socket, context: WorkerContext) -> None:
    """Accept clients until the lifecycle asks the server to stop.

    The listener must carry a timeout so the loop can notice a stop request
    between ``accept`` calls.
    """
    lifecycle = context.lifecycle
    while True:
        try:
            client_socket, client_address = server_socket.accept()
        except socket.timeout:
            if lifecycle.should_stop():
                break
            continue
        except OSError as error:
            if lifecycle.should_stop():
                break
            ACCEPT_LOGGER.error(
                "Socket accept failed",
                extra={"event": "accept_error", "error_type": type(error).__name__},
            )
            continue

        if lifecycle.is_draining():
            _reject_while_draining(client_socket, context)
            continue

        _handle_accepted_client(client_socket, client_address, context)
