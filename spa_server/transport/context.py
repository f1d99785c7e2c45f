"""Context object shared across worker threads."""

import ssl
from dataclasses import dataclass
from typing import Optional

from spa_server.bootstrap.config import ServerConfig
from spa_server.domain.http_types import Handler
from spa_server.lifecycle.state import ServerLifecycle


@dataclass(frozen=True)
class WorkerContext:
    """Read-only dependencies shared across handler threads."""

    config: ServerConfig
    lifecycle: ServerLifecycle
    handler: Handler
    tls_context: Optional[ssl.SSLContext] = None
