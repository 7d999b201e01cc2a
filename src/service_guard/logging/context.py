"""Log context for per-service polling tasks.

Each monitoring task runs in its own copy of the context, so keys bound
here tag only that service's log lines, including records that come in
through stdlib ``logging``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog

SERVICE_KEY = "service"


@contextmanager
def service_context(service_name: str, **extra: object) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``service_name``."""
    with structlog.contextvars.bound_contextvars(**{SERVICE_KEY: service_name}, **extra):
        yield
