"""Filesystem sandbox utilities for safe path resolution."""

import posixpath
from pathlib import Path
from typing import Union


class ForbiddenPath(Exception):
    """Raised when a requested path escapes the configured sandbox."""


def clean_url_path(path: str) -> str:
    """Return the shortest rooted equivalent of a URL path.

    ``.`` and ``..`` segments and repeated slashes are collapsed lexically, so
    the result never climbs above ``/``.
    """
    if not path.startswith("/"):
        path = "/" + path
    cleaned = posixpath.normpath(path)
    # normpath keeps a leading "//" on POSIX
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def resolve_sandbox_path(directory: Union[str, Path], user_path: str) -> Path:
    """Resolve a user-supplied path inside the configured sandbox.

    An empty path resolves to the sandbox root itself. Symlinks are followed,
    and a target that lands outside the root raises ``ForbiddenPath``.
    """
    if "\x00" in user_path:
        raise ForbiddenPath

    directory_root = Path(directory).resolve()
    relative_part = clean_url_path(user_path).lstrip("/")
    if not relative_part:
        return directory_root

    target = (directory_root / relative_part).resolve()
    if not (target == directory_root or directory_root in target.parents):
        raise ForbiddenPath

    return target
