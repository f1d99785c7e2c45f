"""Golden unit tests validating CLI parsing and configuration building."""

import dataclasses
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from spa_server.bootstrap.config import (
    IDLE_TIMEOUT_SECONDS,
    READ_TIMEOUT_SECONDS,
    SHUTDOWN_GRACE_SECONDS,
    WRITE_TIMEOUT_SECONDS,
    ServerConfig,
    build_server_config,
    parse_cli_args,
)

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: "MonkeyPatch") -> None:
    """Keep the caller's environment from leaking into defaults."""
    for name in (
        "PORT",
        "TLS_CERT",
        "TLS_KEY",
        "SPA_SERVER_LOG_LEVEL",
        "SPA_SERVER_LOG_DESTINATION",
        "SPA_SERVER_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_parse_cli_args_uses_defaults() -> None:
    """Defaults serve ./public on every interface, port 8080, plain HTTP."""
    args = parse_cli_args([])

    assert args.directory == "./public"
    assert args.host == "0.0.0.0"
    assert args.port == 8080
    assert args.cert == ""
    assert args.key == ""
    assert args.log_level == "INFO"
    assert args.log_destination == "stdout"
    assert args.log_format == "text"


def test_parse_cli_args_honors_overrides(tmp_path: Path) -> None:
    """Flags replace every default."""
    args = parse_cli_args(
        [
            "--public",
            tmp_path.as_posix(),
            "--host",
            "127.0.0.1",
            "--port",
            "9090",
            "--cert",
            "cert.pem",
            "--key",
            "key.pem",
            "--log-level",
            "debug",
            "--log-destination",
            "server.log",
            "--log-format",
            "JSON",
        ]
    )

    assert args.directory == tmp_path.as_posix()
    assert args.host == "127.0.0.1"
    assert args.port == 9090
    assert args.cert == "cert.pem"
    assert args.key == "key.pem"
    assert args.log_level == "DEBUG"
    assert args.log_destination == "server.log"
    assert args.log_format == "json"


def test_directory_alias() -> None:
    """--directory is accepted as an alias of --public."""
    args = parse_cli_args(["--directory", "/srv/site"])

    assert args.directory == "/srv/site"


def test_parse_cli_args_honors_environment(monkeypatch: "MonkeyPatch") -> None:
    """PORT, TLS_CERT/TLS_KEY and logging variables seed the defaults."""
    monkeypatch.setenv("PORT", "3000")
    monkeypatch.setenv("TLS_CERT", "/etc/tls/cert.pem")
    monkeypatch.setenv("TLS_KEY", "/etc/tls/key.pem")
    monkeypatch.setenv("SPA_SERVER_LOG_LEVEL", "warning")
    monkeypatch.setenv("SPA_SERVER_LOG_DESTINATION", "app.log")
    monkeypatch.setenv("SPA_SERVER_LOG_FORMAT", "json")

    args = parse_cli_args([])

    assert args.port == 3000
    assert args.cert == "/etc/tls/cert.pem"
    assert args.key == "/etc/tls/key.pem"
    assert args.log_level == "WARNING"
    assert args.log_destination == "app.log"
    assert args.log_format == "json"


def test_port_flag_overrides_environment(monkeypatch: "MonkeyPatch") -> None:
    monkeypatch.setenv("PORT", "3000")

    assert parse_cli_args(["--port", "4000"]).port == 4000


def test_empty_port_variable_is_ignored(monkeypatch: "MonkeyPatch") -> None:
    monkeypatch.setenv("PORT", "")

    assert parse_cli_args([]).port == 8080


def test_build_server_config_resolves_directory(tmp_path: Path, monkeypatch) -> None:
    """Relative roots are resolved once against the working directory."""
    monkeypatch.chdir(tmp_path)
    args = parse_cli_args(["--public", "site", "--port", "0"])

    config = build_server_config(args)

    assert config.root_directory == (tmp_path / "site").resolve()
    assert config.root_directory.is_absolute()
    assert config.read_timeout == READ_TIMEOUT_SECONDS
    assert config.write_timeout == WRITE_TIMEOUT_SECONDS
    assert config.idle_timeout == IDLE_TIMEOUT_SECONDS
    assert config.shutdown_grace_seconds == SHUTDOWN_GRACE_SECONDS
    assert config.tls_enabled is False


def test_build_server_config_exits_when_directory_unresolvable(caplog) -> None:
    """A root that cannot be resolved is fatal."""
    args = parse_cli_args(["--public", "loop"])

    with patch(
        "spa_server.bootstrap.config.Path.resolve",
        side_effect=RuntimeError("Symlink loop"),
    ), pytest.raises(SystemExit) as excinfo:
        build_server_config(args)

    assert excinfo.value.code == 1
    record = caplog.records[-1]
    assert record.event == "config_error"
    assert record.levelname == "CRITICAL"


@pytest.mark.parametrize(
    ("cert", "key", "enabled"),
    [("c.pem", "k.pem", True), ("c.pem", "", False), ("", "k.pem", False), ("", "", False)],
)
def test_tls_requires_both_files(cert: str, key: str, enabled: bool) -> None:
    config = ServerConfig("127.0.0.1", 0, Path("/srv"), cert_file=cert, key_file=key)

    assert config.tls_enabled is enabled
    assert config.security_headers["X-Content-Type-Options"] == "nosniff"
    assert ("Strict-Transport-Security" in config.security_headers) is enabled


def test_server_config_is_immutable() -> None:
    config = ServerConfig("127.0.0.1", 0, Path("/srv"))

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.port = 1  # type: ignore[misc]
