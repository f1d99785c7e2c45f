"""Liveness probe handler."""

import logging
from typing import Mapping

from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.domain.http_types import HttpRequest, HttpResponse
from spa_server.domain.response_builders import healthz_response

SYSTEM_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.handlers.system"), {}
)


def handle_healthz(
    request: HttpRequest, security_headers: Mapping[str, str]
) -> HttpResponse:
    """Answer /healthz without touching the filesystem."""
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug("Health check performed", extra={"event": "healthz_check"})
    return healthz_response(request, security_headers)
