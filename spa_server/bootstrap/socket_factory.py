"""Socket creation and TLS configuration."""

import logging
import socket
import ssl
import sys
from typing import Optional

from spa_server.bootstrap.config import ServerConfig
from spa_server.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("spa_server.socket"), {})

ACCEPT_POLL_SECONDS = 0.5
LISTEN_BACKLOG = 128


def create_server_socket(config: ServerConfig) -> socket.socket:
    """Bind the listening socket, exiting the process if the address is unusable."""
    try:
        server_socket = socket.create_server(
            (config.host, config.port), backlog=LISTEN_BACKLOG
        )
    except OSError as error:
        SOCKET_LOGGER.critical(
            "Failed to bind listening socket",
            extra={
                "event": "bind_failed",
                "host": config.host,
                "port": config.port,
                "error": str(error),
            },
        )
        sys.exit(1)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return server_socket


def create_tls_context(config: ServerConfig) -> Optional[ssl.SSLContext]:
    """Load the configured certificate pair, or return None for plain HTTP."""
    if not config.tls_enabled:
        return None
    try:
        tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        tls_context.load_cert_chain(config.cert_file, config.key_file)
    except (ssl.SSLError, OSError) as error:
        SOCKET_LOGGER.critical(
            "Failed to load TLS certificates",
            extra={"event": "tls_config_failed", "error": str(error)},
        )
        sys.exit(1)
    return tls_context
