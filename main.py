"""Static file server with single-page-application fallback."""

import logging
import sys

from spa_server.bootstrap.config import build_server_config, parse_cli_args
from spa_server.bootstrap.logging_setup import configure_logging
from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.lifecycle.manager import ServerManager, install_signal_handlers

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("spa_server.server"), {})


def main(argv: list[str]) -> int:
    """Run the server until SIGINT or SIGTERM, returning the exit status."""
    args = parse_cli_args(argv)
    configure_logging(args.log_level, args.log_destination, args.log_format == "json")

    config = build_server_config(args)
    SERVER_LOGGER.info(
        "Starting static file server",
        extra={
            "event": "server_starting",
            "host": config.host,
            "port": config.port,
            "directory": str(config.root_directory),
            "tls": config.tls_enabled,
            "read_timeout": config.read_timeout,
            "write_timeout": config.write_timeout,
            "idle_timeout": config.idle_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )
    manager = ServerManager(config)
    install_signal_handlers(manager)
    manager.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
