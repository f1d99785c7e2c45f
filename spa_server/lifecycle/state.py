"""Server lifecycle state management."""

import enum
import logging
import socket
import threading
import time

from spa_server.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.lifecycle"), {}
)


class ServerPhase(enum.IntEnum):
    """Lifecycle phases; a server only ever moves to a higher phase."""

    CREATED = 0
    LISTENING = 1
    SHUTTING_DOWN = 2
    STOPPED = 3


class ServerLifecycle:
    """Tracks the server phase, worker threads and open client connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._phase = ServerPhase.CREATED
        self._stop_event = threading.Event()
        self._workers: set[threading.Thread] = set()
        self._connections: dict[socket.socket, bool] = {}

    @property
    def phase(self) -> ServerPhase:
        with self._lock:
            return self._phase

    def _advance(self, target: ServerPhase) -> bool:
        with self._lock:
            previous = self._phase
            if target <= previous:
                return False
            self._phase = target
        LIFECYCLE_LOGGER.info(
            "Server phase changed",
            extra={
                "event": "phase_changed",
                "from_phase": previous.name.lower(),
                "to_phase": target.name.lower(),
            },
        )
        return True

    def mark_listening(self) -> bool:
        """Record that the listener is bound and the accept loop is running."""
        return self._advance(ServerPhase.LISTENING)

    def mark_stopped(self) -> bool:
        """Record that the listener is closed and the accept loop has exited."""
        self._stop_event.set()
        return self._advance(ServerPhase.STOPPED)

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def is_draining(self) -> bool:
        """Check if the server is in draining mode."""
        return self.phase >= ServerPhase.SHUTTING_DOWN

    def begin_draining(self) -> bool:
        """Stop accepting and close idle connections; in-flight ones may finish.

        Returns False when shutdown had already begun.
        """
        self._stop_event.set()
        if not self._advance(ServerPhase.SHUTTING_DOWN):
            return False
        with self._lock:
            idle = [conn for conn, is_idle in self._connections.items() if is_idle]
        for connection in idle:
            _shutdown_socket(connection)
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown",
            extra={"event": "drain_started", "idle_connections_closed": len(idle)},
        )
        return True

    def register_worker(self, thread: threading.Thread) -> None:
        """Register a worker thread for tracking."""
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.discard(thread)

    def track_connection(self, connection: socket.socket) -> None:
        """Start tracking a client connection.

        A new connection is not idle: its first request may still be in
        transit, so draining leaves it open until the grace period ends.
        """
        with self._lock:
            self._connections[connection] = False

    def release_connection(self, connection: socket.socket) -> None:
        with self._lock:
            self._connections.pop(connection, None)

    def mark_idle(self, connection: socket.socket) -> bool:
        """Flag a connection as waiting for its next request.

        Returns False while draining; the caller should close the connection
        instead of waiting.
        """
        with self._lock:
            if self._phase >= ServerPhase.SHUTTING_DOWN:
                return False
            if connection in self._connections:
                self._connections[connection] = True
            return True

    def mark_active(self, connection: socket.socket) -> None:
        with self._lock:
            if connection in self._connections:
                self._connections[connection] = False

    def open_connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {w for w in self._workers if w.is_alive()}
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={
                        "event": "drain_timeout",
                        "remaining_workers": len(active_workers),
                    },
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break

    def force_close_connections(self) -> int:
        """Shut down every tracked connection, returning how many were closed."""
        with self._lock:
            connections = list(self._connections)
        closed = 0
        for connection in connections:
            if _shutdown_socket(connection):
                closed += 1
        LIFECYCLE_LOGGER.warning(
            "Forced remaining connections closed",
            extra={"event": "connections_forced_closed", "connections": closed},
        )
        return closed


def _shutdown_socket(connection: socket.socket) -> bool:
    try:
        connection.shutdown(socket.SHUT_RDWR)
    except OSError as error:
        LIFECYCLE_LOGGER.warning(
            "Failed to close connection",
            extra={"event": "connection_close_failed", "error_type": type(error).__name__},
        )
        return False
    return True
