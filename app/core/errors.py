from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class AppError(Exception):
    """A deterministic application error surfaced to clients as JSON."""

    detail: str
    code: str = "error"
    status_code: int = 400

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.detail}"


@dataclass
class UpstreamError(AppError):
    """The translation API call failed (network, non-2xx or malformed body)."""

    code: str = "upstream_error"
    status_code: int = 502
    upstream_status: Optional[int] = None


@dataclass
class UpstreamRateLimited(UpstreamError):
    code: str = "upstream_rate_limited"
    upstream_status: Optional[int] = 429
    retry_after: Optional[float] = None


@dataclass
class QueueFullError(AppError):
    code: str = "queue_full"
    status_code: int = 503


@dataclass
class QueueClosedError(AppError):
    code: str = "queue_closed"
    status_code: int = 503
