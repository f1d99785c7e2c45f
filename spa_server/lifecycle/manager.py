"""Start, run and drain a server instance."""

import logging
import signal
import threading
import time
from typing import Optional

from spa_server.bootstrap.config import ServerConfig
from spa_server.bootstrap.socket_factory import create_server_socket, create_tls_context
from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.lifecycle.state import ServerLifecycle, ServerPhase
from spa_server.transport.accept_loop import accept_connections
from spa_server.transport.context import WorkerContext
from spa_server.transport.worker import build_request_handler

MANAGER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.lifecycle.manager"), {}
)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServerManager:
    """Owns the listening socket, the accept thread and the drain sequence.

    ``start`` binds and begins accepting on a background thread;
    ``shutdown`` stops accepting, waits up to the configured grace period for
    in-flight requests, then forcibly closes whatever is left.
    """

    def __init__(
        self, config: ServerConfig, lifecycle: Optional[ServerLifecycle] = None
    ) -> None:
        self.config = config
        self.lifecycle = lifecycle or ServerLifecycle()
        self._server_socket = None
        self._accept_thread: Optional[threading.Thread] = None
        self._shutdown_requested = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._stopped_cleanly: Optional[bool] = None
        self._requested_at: Optional[float] = None

    @property
    def address(self) -> tuple[str, int]:
        """Host and port the listener is actually bound to."""
        if self._server_socket is None:
            raise RuntimeError("Server has not been started")
        host, port = self._server_socket.getsockname()[:2]
        return host, port

    def start(self) -> None:
        """Bind the listener and begin accepting connections.

        Exits the process when the certificates or the address are unusable.
        """
        tls_context = create_tls_context(self.config)
        self._server_socket = create_server_socket(self.config)
        context = WorkerContext(
            config=self.config,
            lifecycle=self.lifecycle,
            handler=build_request_handler(self.config, self.lifecycle),
            tls_context=tls_context,
        )
        self._accept_thread = threading.Thread(
            target=accept_connections,
            args=(self._server_socket, context),
            name="accept-loop",
            daemon=True,
        )
        self.lifecycle.mark_listening()
        self._accept_thread.start()

        host, port = self.address
        MANAGER_LOGGER.info(
            "Server listening for connections",
            extra={
                "event": "server_listening",
                "host": host,
                "port": port,
                "directory": str(self.config.root_directory),
                "tls": self.config.tls_enabled,
            },
        )

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested.is_set()

    def request_shutdown(self) -> None:
        """Ask ``wait_for_shutdown`` to return; safe to call from a signal handler.

        The grace period starts counting from the first request.
        """
        if self._requested_at is None:
            self._requested_at = time.monotonic()
        self._shutdown_requested.set()

    def wait_for_shutdown(self, poll_interval: float = 0.5) -> None:
        """Block until a shutdown is requested."""
        # short waits keep the main thread responsive to signals
        while not self._shutdown_requested.wait(poll_interval):
            pass

    def shutdown(self) -> bool:
        """Drain connections within the grace period.

        Returns True when every in-flight request finished before the
        deadline and False when connections had to be forcibly closed.
        Calling it again returns the first outcome.
        """
        with self._shutdown_lock:
            if self._stopped_cleanly is not None:
                return self._stopped_cleanly
            started = self._requested_at or time.monotonic()
            deadline = started + self.config.shutdown_grace_seconds

            self.lifecycle.begin_draining()
            if self._accept_thread is not None:
                self._accept_thread.join()
            if self._server_socket is not None:
                self._server_socket.close()

            MANAGER_LOGGER.info(
                "Waiting for active connections to complete",
                extra={
                    "event": "shutdown_waiting",
                    "shutdown_grace_seconds": self.config.shutdown_grace_seconds,
                },
            )
            remaining = max(0.0, deadline - time.monotonic())
            clean = self.lifecycle.wait_for_workers(remaining)
            if not clean:
                self.lifecycle.force_close_connections()

            self.lifecycle.mark_stopped()
            self._stopped_cleanly = clean
            MANAGER_LOGGER.info(
                "Server shutdown complete",
                extra={"event": "server_stopped", "tls": self.config.tls_enabled},
            )
            return clean

    def serve_forever(self) -> bool:
        """Start, wait for a shutdown request, then drain."""
        if self.lifecycle.phase is ServerPhase.CREATED:
            self.start()
        self.wait_for_shutdown()
        return self.shutdown()


def install_signal_handlers(manager: ServerManager) -> None:
    """Route SIGINT and SIGTERM to a graceful shutdown.

    Only the first signal counts; later ones are logged and ignored while the
    drain is in progress.
    """

    def shutdown_handler(signum: int, _frame) -> None:
        if manager.shutdown_requested or manager.lifecycle.is_draining():
            MANAGER_LOGGER.info(
                "Shutdown already in progress",
                extra={"event": "signal_ignored", "signal": signum},
            )
            return
        MANAGER_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "shutdown_signal", "signal": signum},
        )
        manager.request_shutdown()

    for signum in SHUTDOWN_SIGNALS:
        signal.signal(signum, shutdown_handler)
