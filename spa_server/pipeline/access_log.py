"""Per-request access logging."""

import logging
import time
from http import HTTPStatus

from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.domain.http_types import Handler, HttpRequest, ResponseWriter
from spa_server.transport.response_writer import ResponseObserver

ACCESS_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.pipeline.access"), {}
)


def format_duration(seconds: float) -> str:
    """Render an elapsed time with the most readable unit."""
    if seconds < 1e-6:
        return f"{seconds * 1e9:.0f}ns"
    if seconds < 1e-3:
        return f"{seconds * 1e6:.3f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


def with_access_log(handler: Handler) -> Handler:
    """Wrap ``handler`` so every request emits exactly one access line.

    The line is written after the handler returns or raises, from what the
    response observer saw on the wire:
    ``remoteAddr method path status sizeB duration``.
    """

    def logged_handler(request: HttpRequest, writer: ResponseWriter) -> None:
        started = time.perf_counter()
        observer = ResponseObserver(writer)
        try:
            handler(request, observer)
        finally:
            elapsed = time.perf_counter() - started
            status = observer.status or HTTPStatus.OK.value
            ACCESS_LOGGER.info(
                "%s %s %s %d %dB %s",
                request.client,
                request.method,
                request.path,
                status,
                observer.bytes_written,
                format_duration(elapsed),
                extra={
                    "event": "request_served",
                    "client": request.client,
                    "method": request.method,
                    "route": request.path,
                    "status_code": status,
                    "bytes_out": observer.bytes_written,
                    "duration_ms": round(elapsed * 1000, 3),
                },
            )

    return logged_handler
