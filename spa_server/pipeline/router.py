"""Request routing logic."""

import logging
from pathlib import Path

from spa_server.bootstrap.config import (
    HEALTHZ_PATH,
    INDEX_DOCUMENT,
    STATIC_PREFIX,
    ServerConfig,
)
from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.domain.http_types import HttpRequest, HttpResponse
from spa_server.domain.sandbox import (
    ForbiddenPath,
    clean_url_path,
    resolve_sandbox_path,
)
from spa_server.handlers.file_handler import (
    directory_index,
    serve_file,
    static_asset_response,
)
from spa_server.handlers.system_handlers import handle_healthz

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.pipeline.router"), {}
)


def _log_route(route: str) -> None:
    if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ROUTER_LOGGER.debug(
            "Route matched", extra={"event": "route_matched", "route": route}
        )


def spa_response(request: HttpRequest, config: ServerConfig) -> HttpResponse:
    """Serve the requested file if it exists, otherwise the root index document.

    ``/`` always maps to the index document. A directory is served through its
    own index document and falls back to the root one when it has none.
    """
    root: Path = config.root_directory
    index_path = root / INDEX_DOCUMENT
    cleaned = clean_url_path(request.path)
    if cleaned == "/":
        _log_route("/")
        return serve_file(request, index_path, config.security_headers)

    try:
        target = resolve_sandbox_path(root, cleaned)
        target.stat()
    except (ForbiddenPath, OSError, RuntimeError):
        _log_route("fallback")
        return serve_file(request, index_path, config.security_headers)

    if target.is_dir():
        target = directory_index(target) or index_path
    _log_route("/*")
    return serve_file(request, target, config.security_headers)


def _routing_path(path: str) -> str:
    """Clean ``path`` for prefix matching, keeping a trailing slash."""
    cleaned = clean_url_path(path)
    if path.endswith("/") and cleaned != "/":
        cleaned += "/"
    return cleaned


def route_request(request: HttpRequest, config: ServerConfig) -> HttpResponse:
    """Route the request to the appropriate handler and return a response.

    Routes are matched against the cleaned path, so spellings such as
    ``//healthz`` or ``/a/../static/app.js`` reach the same handler as their
    canonical form.
    """
    path = _routing_path(request.path)
    if path == HEALTHZ_PATH:
        _log_route(HEALTHZ_PATH)
        return handle_healthz(request, config.security_headers)

    if path.startswith(STATIC_PREFIX):
        _log_route("/static/*")
        return static_asset_response(
            request,
            config.root_directory,
            path[len(STATIC_PREFIX) :],
            config.security_headers,
        )

    return spa_response(request, config)
