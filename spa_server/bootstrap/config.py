"""Server configuration and CLI argument parsing."""

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from spa_server.domain.correlation_id import CorrelationLoggerAdapter

CONFIG_LOGGER = CorrelationLoggerAdapter(logging.getLogger("spa_server.config"), {})

DEFAULT_PORT = "8080"
DEFAULT_PUBLIC_DIR = "./public"
DEFAULT_HOST = "0.0.0.0"

READ_TIMEOUT_SECONDS = 10.0
WRITE_TIMEOUT_SECONDS = 15.0
IDLE_TIMEOUT_SECONDS = 120.0
SHUTDOWN_GRACE_SECONDS = 5.0

MAX_BODY_BYTES = 1024 * 1024
HEADER_DELIMITER = b"\r\n\r\n"
STATIC_PREFIX = "/static/"
HEALTHZ_PATH = "/healthz"
INDEX_DOCUMENT = "index.html"
ALLOWED_METHODS = {"GET", "HEAD"}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
}
TLS_SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    **SECURITY_HEADERS,
}


@dataclass(frozen=True)
class ServerConfig:
    """Immutable server settings, resolved once at startup."""

    host: str
    port: int
    root_directory: Path
    cert_file: str = ""
    key_file: str = ""
    read_timeout: float = READ_TIMEOUT_SECONDS
    write_timeout: float = WRITE_TIMEOUT_SECONDS
    idle_timeout: float = IDLE_TIMEOUT_SECONDS
    shutdown_grace_seconds: float = SHUTDOWN_GRACE_SECONDS

    @property
    def tls_enabled(self) -> bool:
        """TLS is used only when both certificate and key are configured."""
        return bool(self.cert_file and self.key_file)

    @property
    def security_headers(self) -> dict[str, str]:
        """Headers attached to every response for this listener."""
        return TLS_SECURITY_HEADERS if self.tls_enabled else SECURITY_HEADERS


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        description="Static file server with single-page-application fallback"
    )
    parser.add_argument(
        "--public",
        "--directory",
        dest="directory",
        default=DEFAULT_PUBLIC_DIR,
        help="Directory to serve static files from",
    )
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument(
        "--port",
        type=int,
        default=os.getenv("PORT") or DEFAULT_PORT,
        help="Listening port (defaults to $PORT, then 8080)",
    )
    parser.add_argument(
        "--cert",
        default=os.getenv("TLS_CERT", ""),
        help="Path to TLS certificate file (defaults to $TLS_CERT)",
    )
    parser.add_argument(
        "--key",
        default=os.getenv("TLS_KEY", ""),
        help="Path to TLS private key file (defaults to $TLS_KEY)",
    )
    default_log_level = os.getenv("SPA_SERVER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("SPA_SERVER_LOG_DESTINATION", "stdout")
    default_format = os.getenv("SPA_SERVER_LOG_FORMAT", "text").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=default_format,
        choices=["text", "json"],
        type=str.lower,
    )
    return parser.parse_args(argv)


def resolve_root_directory(directory: str) -> Path:
    """Resolve the served directory to an absolute path, exiting on failure."""
    try:
        return Path(directory).expanduser().resolve()
    except (OSError, RuntimeError) as error:
        CONFIG_LOGGER.critical(
            "Failed to resolve public directory",
            extra={
                "event": "config_error",
                "directory": directory,
                "error": str(error),
            },
        )
        sys.exit(1)


def build_server_config(args: argparse.Namespace) -> ServerConfig:
    """Translate parsed CLI arguments into the immutable server configuration."""
    return ServerConfig(
        host=args.host,
        port=args.port,
        root_directory=resolve_root_directory(args.directory),
        cert_file=args.cert or "",
        key_file=args.key or "",
    )
