"""Pure HTTP response builders."""

from http import HTTPStatus
from typing import Iterable, Mapping, Optional

from spa_server.domain.http_types import HttpRequest, HttpResponse, should_close

PLAIN_TEXT = "text/plain; charset=utf-8"


def _wants_close(request: Optional[HttpRequest]) -> bool:
    if request is None:
        return True
    return should_close(request.headers, request.version)


def text_response(
    status: HTTPStatus,
    message: str,
    request: Optional[HttpRequest],
    security_headers: Mapping[str, str],
) -> HttpResponse:
    """Return a text/plain response honoring the caller's connection preference."""
    headers = {"Content-Type": PLAIN_TEXT, **security_headers}
    return HttpResponse(
        status, headers, message.encode(), _wants_close(request)
    )


def error_response(
    status: HTTPStatus,
    request: Optional[HttpRequest],
    security_headers: Mapping[str, str],
) -> HttpResponse:
    """Produce the standard plain-text error page for ``status``."""
    return text_response(
        status, f"{status.value} {status.phrase}\n", request, security_headers
    )


def healthz_response(
    request: HttpRequest, security_headers: Mapping[str, str]
) -> HttpResponse:
    """Produce the liveness probe response."""
    return text_response(HTTPStatus.OK, "ok", request, security_headers)


def not_found_response(
    request: HttpRequest, security_headers: Mapping[str, str]
) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return text_response(
        HTTPStatus.NOT_FOUND, "404 page not found\n", request, security_headers
    )


def forbidden_response(
    request: HttpRequest, security_headers: Mapping[str, str]
) -> HttpResponse:
    """Produce a 403 response honoring the caller's connection preference."""
    return error_response(HTTPStatus.FORBIDDEN, request, security_headers)


def internal_error_response(
    request: HttpRequest, security_headers: Mapping[str, str]
) -> HttpResponse:
    """Produce a 500 response without leaking error details."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, request, security_headers)


def bad_request_response(
    request: Optional[HttpRequest], security_headers: Mapping[str, str]
) -> HttpResponse:
    """Produce a 400 response; without a parsed request the connection closes."""
    return error_response(HTTPStatus.BAD_REQUEST, request, security_headers)


def entity_too_large_response(security_headers: Mapping[str, str]) -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return error_response(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, None, security_headers)


def method_not_allowed_response(
    request: HttpRequest,
    security_headers: Mapping[str, str],
    allowed_methods: Iterable[str],
) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    response = error_response(
        HTTPStatus.METHOD_NOT_ALLOWED, request, security_headers
    )
    response.headers["Allow"] = ", ".join(sorted(allowed_methods))
    return response


def not_modified_response(
    request: HttpRequest,
    security_headers: Mapping[str, str],
    last_modified: str,
) -> HttpResponse:
    """Produce a bodiless 304 for a satisfied conditional request."""
    headers = {"Last-Modified": last_modified, **security_headers}
    return HttpResponse(
        HTTPStatus.NOT_MODIFIED,
        headers,
        b"",
        _wants_close(request),
    )


def draining_response(security_headers: Mapping[str, str]) -> HttpResponse:
    """Produce a 503 response indicating the server is draining."""
    headers = {"Content-Type": PLAIN_TEXT, **security_headers}
    return HttpResponse(
        HTTPStatus.SERVICE_UNAVAILABLE,
        headers,
        b"draining",
        True,
    )
