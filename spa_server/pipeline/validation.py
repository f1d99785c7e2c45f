"""Request validation run before routing."""

from typing import Mapping, Optional

from spa_server.domain.http_types import HttpRequest, HttpResponse
from spa_server.domain.response_builders import (
    bad_request_response,
    method_not_allowed_response,
)


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def enforce_allowed_method(
    request: HttpRequest,
    allowed_methods: set[str],
    security_headers: Mapping[str, str],
) -> Optional[HttpResponse]:
    """Ensure the HTTP method is part of the supported allowlist."""
    if request.method in allowed_methods:
        return None
    return method_not_allowed_response(request, security_headers, allowed_methods)


def enforce_safe_path(
    request: HttpRequest, security_headers: Mapping[str, str]
) -> Optional[HttpResponse]:
    """Reject paths that are not rooted or carry NUL bytes.

    Dot segments are not rejected here; the router cleans them away.
    """
    if not request.path.startswith("/") or "\x00" in request.path:
        return bad_request_response(request, security_headers)
    return None


def validate_request(
    request: HttpRequest,
    allowed_methods: set[str],
    security_headers: Mapping[str, str],
) -> Optional[HttpResponse]:
    """Return an error response when the request fails validation checks."""
    method_error = enforce_allowed_method(request, allowed_methods, security_headers)
    if method_error is not None:
        return method_error
    return enforce_safe_path(request, security_headers)
