"""Domain models for photo enhancement jobs."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class PhotoStatus(StrEnum):
    """Lifecycle states of a photo record."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ENHANCEABLE_STATUSES = frozenset({PhotoStatus.PENDING, PhotoStatus.FAILED})


@dataclass(frozen=True)
class PhotoRecord:
    """Represents one uploaded photo and its enhancement state."""

    id: UUID
    user_id: UUID
    source_url: str
    status: PhotoStatus
    artifact_url: str | None
    failure_reason: str | None
    attempt_id: UUID | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_enhanceable(self) -> bool:
        return self.status in ENHANCEABLE_STATUSES


@dataclass(frozen=True)
class FetchedImage:
    """Downloaded source image bytes."""

    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)
