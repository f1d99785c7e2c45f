"""File serving handlers."""

import logging
import mimetypes
import os
import stat
from email.utils import formatdate, parsedate_to_datetime
from http import HTTPStatus
from pathlib import Path
from typing import BinaryIO, Iterator, Mapping, Optional

from spa_server.bootstrap.config import INDEX_DOCUMENT
from spa_server.domain.correlation_id import CorrelationLoggerAdapter
from spa_server.domain.http_types import HttpRequest, HttpResponse, should_close
from spa_server.domain.response_builders import (
    forbidden_response,
    internal_error_response,
    not_found_response,
    not_modified_response,
)
from spa_server.domain.sandbox import ForbiddenPath, resolve_sandbox_path

FILE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("spa_server.handlers.file"), {}
)

CHUNK_SIZE = 65536
CHARSET_TYPES = {
    "application/javascript",
    "application/json",
    "application/xml",
    "image/svg+xml",
}


class FileBody:
    """Iterable file payload that owns the open handle until closed."""

    def __init__(self, file_handle: BinaryIO, size: int, chunk_size: int = CHUNK_SIZE):
        self._file_handle = file_handle
        self._remaining = size
        self._chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        while self._remaining > 0:
            chunk = self._file_handle.read(min(self._chunk_size, self._remaining))
            if not chunk:
                break
            self._remaining -= len(chunk)
            if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
                FILE_LOGGER.debug(
                    "File chunk read",
                    extra={"event": "file_chunk_read", "bytes": len(chunk)},
                )
            yield chunk

    def close(self) -> None:
        self._file_handle.close()


def content_type_for_path(filepath: Path) -> str:
    """Guess the Content-Type from the file extension."""
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    if mime_type is None:
        return "application/octet-stream"
    if mime_type.startswith("text/") or mime_type in CHARSET_TYPES:
        return f"{mime_type}; charset=utf-8"
    return mime_type


def _not_modified(request: HttpRequest, modified_at: float) -> bool:
    header_value = request.headers.get("if-modified-since")
    if not header_value or "if-none-match" in request.headers:
        return False
    try:
        since = parsedate_to_datetime(header_value)
    except (TypeError, ValueError):
        return False
    if since.tzinfo is None:
        return False
    # HTTP dates carry whole seconds only
    return int(modified_at) <= since.timestamp()


def _open_error_response(
    request: HttpRequest,
    filepath: Path,
    error: OSError,
    security_headers: Mapping[str, str],
) -> HttpResponse:
    if isinstance(error, (FileNotFoundError, NotADirectoryError, IsADirectoryError)):
        FILE_LOGGER.info(
            "File not found",
            extra={"event": "file_not_found", "path": filepath.as_posix()},
        )
        return not_found_response(request, security_headers)
    if isinstance(error, PermissionError):
        FILE_LOGGER.warning(
            "File not readable",
            extra={"event": "file_forbidden", "path": filepath.as_posix()},
        )
        return forbidden_response(request, security_headers)
    FILE_LOGGER.error(
        "File read failed",
        extra={
            "event": "file_read_error",
            "path": filepath.as_posix(),
            "error_type": type(error).__name__,
        },
    )
    return internal_error_response(request, security_headers)


def serve_file(
    request: HttpRequest, filepath: Path, security_headers: Mapping[str, str]
) -> HttpResponse:
    """Stream a regular file, mapping filesystem errors to HTTP statuses.

    The file is opened before any response is produced, so a missing (404),
    unreadable (403) or otherwise failing (500) file never yields a partial
    200.
    """
    try:
        file_handle = open(filepath, "rb")  # pylint: disable=consider-using-with
    except OSError as error:
        return _open_error_response(request, filepath, error, security_headers)

    try:
        file_stat = os.fstat(file_handle.fileno())
    except OSError as error:
        file_handle.close()
        return _open_error_response(request, filepath, error, security_headers)
    if not stat.S_ISREG(file_stat.st_mode):
        file_handle.close()
        return not_found_response(request, security_headers)

    last_modified = formatdate(file_stat.st_mtime, usegmt=True)
    if _not_modified(request, file_stat.st_mtime):
        file_handle.close()
        return not_modified_response(request, security_headers, last_modified)

    headers = {
        "Content-Type": content_type_for_path(filepath),
        "Last-Modified": last_modified,
        **security_headers,
    }
    if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
        FILE_LOGGER.debug(
            "File read started",
            extra={
                "event": "file_read_started",
                "path": filepath.as_posix(),
                "bytes": file_stat.st_size,
            },
        )
    return HttpResponse(
        HTTPStatus.OK,
        headers,
        close_connection=should_close(request.headers, request.version),
        body_iter=FileBody(file_handle, file_stat.st_size),
        content_length=file_stat.st_size,
    )


def directory_index(directory: Path) -> Optional[Path]:
    """Return the directory's index document if it has one."""
    candidate = directory / INDEX_DOCUMENT
    return candidate if candidate.is_file() else None


def static_asset_response(
    request: HttpRequest,
    root_directory: Path,
    relative_path: str,
    security_headers: Mapping[str, str],
) -> HttpResponse:
    """Serve ``relative_path`` from the asset tree with no SPA fallback."""
    try:
        target = resolve_sandbox_path(root_directory, relative_path)
    except (ForbiddenPath, OSError, RuntimeError):
        FILE_LOGGER.warning(
            "Static path outside the served directory",
            extra={"event": "forbidden_path", "route": request.path},
        )
        return not_found_response(request, security_headers)

    if target.is_dir():
        index_path = directory_index(target)
        if index_path is None:
            return not_found_response(request, security_headers)
        target = index_path
    return serve_file(request, target, security_headers)
