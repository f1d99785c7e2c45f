"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Generator

import pytest

from tests.utils.http import reserve_port
from tests.utils.server import (
    PROJECT_ROOT,
    ServerProcessInfo,
    launch_server,
    populate_public_directory,
)

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="public_dir")
def _public_dir(tmp_path: Path) -> Path:
    """Provide a populated public directory for in-process tests."""

    public = tmp_path / "public"
    public.mkdir()
    return populate_public_directory(public)


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the server in a background process for integration tests."""

    host = "127.0.0.1"
    port = reserve_port(host)
    directory = populate_public_directory(tmp_path_factory.mktemp("public"))
    log_file = tmp_path_factory.mktemp("logs") / "server.log"
    yield from launch_server(host, port, directory, log_file)


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
