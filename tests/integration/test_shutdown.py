"""Integration tests for graceful shutdown of the server process."""

# pylint: disable=redefined-outer-name

import signal
import socket
import time

import pytest

from tests.utils.http import (
    build_request,
    connection_closed,
    read_http_response,
    send_signal_to_process,
    wait_for_healthz_status,
    wait_for_log_line,
)
from tests.utils.server import INDEX_BODY

pytestmark = pytest.mark.integration


def test_healthz_returns_200_during_normal_operation(server_process):
    assert wait_for_healthz_status(
        server_process["host"], server_process["port"], 200, timeout=2.0
    )


@pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
def test_signal_triggers_clean_exit(server_process, sig):
    process = server_process["process"]

    send_signal_to_process(process.pid, sig)

    assert process.wait(timeout=7.0) == 0
    assert wait_for_log_line(server_process["log_file"], "Server shutdown complete")


def test_idle_keep_alive_connection_does_not_delay_exit(server_process):
    host, port = server_process["host"], server_process["port"]
    process = server_process["process"]

    with socket.create_connection((host, port), timeout=5) as sock:
        sock.sendall(build_request("/"))
        assert read_http_response(sock).body == INDEX_BODY

        start = time.monotonic()
        send_signal_to_process(process.pid, signal.SIGTERM)

        assert connection_closed(sock, timeout=3)
        assert process.wait(timeout=5.0) == 0
        assert time.monotonic() - start < 3.0


def test_in_flight_request_finishes_during_drain(server_process):
    """A request that started before the signal still gets its response."""
    host, port = server_process["host"], server_process["port"]
    process = server_process["process"]
    request = build_request("/missing/route")

    with socket.create_connection((host, port), timeout=5) as sock:
        # half a request marks the connection as active
        sock.sendall(request[:10])
        time.sleep(0.2)
        send_signal_to_process(process.pid, signal.SIGTERM)
        assert wait_for_log_line(
            server_process["log_file"], "Beginning graceful shutdown"
        )
        assert process.poll() is None

        sock.sendall(request[10:])
        response = read_http_response(sock)

    assert response.status_code == 200
    assert response.body == INDEX_BODY
    assert response.headers["connection"] == "close"
    assert process.wait(timeout=6.0) == 0


def test_stalled_request_is_forced_closed_after_grace(server_process):
    """Connections still busy after the drain timeout are cut off."""
    host, port = server_process["host"], server_process["port"]
    process = server_process["process"]

    with socket.create_connection((host, port), timeout=10) as sock:
        sock.sendall(b"GET / HTTP/1.1\r\n")
        time.sleep(0.2)
        start = time.monotonic()
        send_signal_to_process(process.pid, signal.SIGTERM)

        assert process.wait(timeout=8.0) == 0
        elapsed = time.monotonic() - start
        assert 4.0 < elapsed < 7.5
        assert connection_closed(sock, timeout=2)


def test_new_connections_refused_after_shutdown_begins(server_process):
    host, port = server_process["host"], server_process["port"]
    process = server_process["process"]

    with socket.create_connection((host, port), timeout=10) as busy:
        busy.sendall(b"GET / HTTP/1.1\r\n")
        time.sleep(0.2)
        send_signal_to_process(process.pid, signal.SIGTERM)
        time.sleep(1.0)

        try:
            with socket.create_connection((host, port), timeout=2) as late:
                late.sendall(build_request("/"))
                response = read_http_response(late)
        except (ConnectionRefusedError, ConnectionResetError, RuntimeError):
            pass
        else:
            assert response.status_code == 503
            assert response.body == b"draining"

    process.wait(timeout=8.0)
