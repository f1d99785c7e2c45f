"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Callable, Iterator, Mapping, Optional, Protocol


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes = b""
    version: str = "HTTP/1.1"
    client: str = "-"


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client.

    ``body_iter`` streams the payload instead of ``body``; ``content_length``
    must then be set so the response can be framed without chunking.
    """

    status: HTTPStatus
    headers: dict[str, str]
    body: bytes = b""
    close_connection: bool = False
    body_iter: Optional[Iterator[bytes]] = None
    content_length: Optional[int] = None


class ResponseWriter(Protocol):
    """Outbound side of a single request/response exchange."""

    def write_head(self, status: int, headers: Mapping[str, str]) -> None:
        """Send the status line and headers."""

    def write(self, data: bytes) -> int:
        """Send body bytes, returning how many were written."""


Handler = Callable[[HttpRequest, ResponseWriter], None]


def should_close(headers: Mapping[str, str], version: str = "HTTP/1.1") -> bool:
    """Determine whether the connection should be closed after responding."""
    connection = headers.get("connection", "").lower()
    if version == "HTTP/1.0":
        return connection != "keep-alive"
    return connection == "close"
