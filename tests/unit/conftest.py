"""Shared fixtures for unit tests."""

import logging
from pathlib import Path

import pytest

from spa_server.bootstrap.config import ServerConfig


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("spa_server")
    old_propagate = logger.propagate
    old_level = logger.level
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    yield
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = old_propagate
    logger.setLevel(old_level)


@pytest.fixture(name="server_config")
def fixture_server_config(public_dir: Path) -> ServerConfig:
    """Plain-HTTP configuration serving the populated public directory."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        root_directory=public_dir.resolve(),
        read_timeout=2.0,
        write_timeout=2.0,
        idle_timeout=2.0,
        shutdown_grace_seconds=1.0,
    )
