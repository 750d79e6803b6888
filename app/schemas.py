from __future__ import annotations

from pydantic import BaseModel, Field

from app.core.dispatch_queue import QueueStatus


class QueueStatusOut(BaseModel):
    """Dispatch queue snapshot, serialized with camelCase keys."""

    queue_length: int = Field(ge=0, serialization_alias="queueLength")
    recent_requests: int = Field(ge=0, serialization_alias="recentRequests")
    max_per_minute: int = Field(ge=1, serialization_alias="maxPerMinute")
    processing: bool

    @classmethod
    def from_status(cls, status: QueueStatus) -> "QueueStatusOut":
        return cls(
            queue_length=status.queue_length,
            recent_requests=status.recent_requests,
            max_per_minute=status.max_per_minute,
            processing=status.processing,
        )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)
