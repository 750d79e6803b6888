from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional


request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Ensure this always exists so our formatter never crashes.
        record.request_id = request_id_var.get("-")
        return True


def set_log_context(*, request_id: Optional[str] = None) -> None:
    if request_id is not None:
        request_id_var.set(request_id)


def get_request_id() -> str:
    return request_id_var.get("-")


@contextmanager
def log_context(*, request_id: str) -> Iterator[None]:
    """Temporarily tag log records with ``request_id``; restores the previous id on exit."""
    token = request_id_var.set(request_id)
    try:
        yield
    finally:
        request_id_var.reset(token)


def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(lvl)

    # Replace handlers to avoid duplicated logs under reload.
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_ContextFilter())

    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s | request_id=%(request_id)s"
    handler.setFormatter(logging.Formatter(fmt))

    root.handlers = [handler]

    logging.getLogger("httpx").setLevel(max(lvl, logging.WARNING))
    logging.getLogger("uvicorn.access").setLevel(max(lvl, logging.INFO))


def get_logger(name: str = "translate") -> logging.Logger:
    return logging.getLogger(name)
