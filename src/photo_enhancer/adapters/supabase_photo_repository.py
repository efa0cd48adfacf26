"""Supabase-backed photo repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from photo_enhancer.domain.photos import ENHANCEABLE_STATUSES, PhotoRecord, PhotoStatus
from photo_enhancer.services.enhancement import PhotoRepository

_COLUMNS = (
    "id, user_id, source_url, artifact_url, status, failure_reason, attempt_id, "
    "created_at, updated_at"
)


@dataclass
class SupabasePhotoRepository(PhotoRepository):
    """Supabase implementation for photo records.

    Transitions filter on the expected status (and attempt id) so PostgREST
    only returns a row when the compare-and-swap matched.
    """

    client: Client

    def create_photo(self, user_id: UUID, source_url: str) -> PhotoRecord:
        """Create a PENDING photo row and return it."""
        response = (
            self.client.table("photos")
            .insert(
                {
                    "user_id": str(user_id),
                    "source_url": source_url,
                    "status": PhotoStatus.PENDING.value,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create photo")
        return _to_record(response.data[0])

    def get_photo(self, photo_id: UUID) -> PhotoRecord | None:
        """Return a photo by id, if present."""
        response = (
            self.client.table("photos")
            .select(_COLUMNS)
            .eq("id", str(photo_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_record(response.data[0])

    def list_photos(self, user_id: UUID, limit: int) -> list[PhotoRecord]:
        """Return the user's most recent photos."""
        response = (
            self.client.table("photos")
            .select(_COLUMNS)
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_to_record(row) for row in response.data or []]

    def begin_processing(self, photo_id: UUID, attempt_id: UUID) -> PhotoRecord | None:
        """Atomically claim a PENDING or FAILED photo for a new attempt."""
        response = (
            self.client.table("photos")
            .update(
                {
                    "status": PhotoStatus.PROCESSING.value,
                    "failure_reason": None,
                    "attempt_id": str(attempt_id),
                    "updated_at": _now_iso(),
                }
            )
            .eq("id", str(photo_id))
            .in_("status", [status.value for status in ENHANCEABLE_STATUSES])
            .execute()
        )
        if not response.data:
            return None
        return _to_record(response.data[0])

    def revert_processing(
        self,
        photo_id: UUID,
        attempt_id: UUID,
        status: PhotoStatus,
        failure_reason: str | None,
    ) -> bool:
        """Return a claimed photo to its previous state."""
        return self._transition(
            photo_id,
            attempt_id,
            {
                "status": status.value,
                "failure_reason": failure_reason,
                "attempt_id": None,
            },
        )

    def complete(self, photo_id: UUID, attempt_id: UUID, artifact_url: str) -> bool:
        """Mark the attempt completed with its artifact."""
        return self._transition(
            photo_id,
            attempt_id,
            {
                "status": PhotoStatus.COMPLETED.value,
                "artifact_url": artifact_url,
                "failure_reason": None,
            },
        )

    def fail(self, photo_id: UUID, attempt_id: UUID, reason: str) -> bool:
        """Mark the attempt failed with a reason."""
        return self._transition(
            photo_id,
            attempt_id,
            {
                "status": PhotoStatus.FAILED.value,
                "artifact_url": None,
                "failure_reason": reason,
            },
        )

    def list_stale_processing(self, older_than: datetime) -> list[PhotoRecord]:
        """Return PROCESSING rows untouched since ``older_than``."""
        response = (
            self.client.table("photos")
            .select(_COLUMNS)
            .eq("status", PhotoStatus.PROCESSING.value)
            .lt("updated_at", older_than.isoformat())
            .execute()
        )
        return [_to_record(row) for row in response.data or []]

    def _transition(
        self, photo_id: UUID, attempt_id: UUID, changes: dict[str, object]
    ) -> bool:
        response = (
            self.client.table("photos")
            .update({**changes, "updated_at": _now_iso()})
            .eq("id", str(photo_id))
            .eq("status", PhotoStatus.PROCESSING.value)
            .eq("attempt_id", str(attempt_id))
            .execute()
        )
        return bool(response.data)


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _to_record(row: dict[str, object]) -> PhotoRecord:
    attempt_id = row.get("attempt_id")
    return PhotoRecord(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        source_url=str(row["source_url"]),
        status=PhotoStatus(row["status"]),
        artifact_url=row.get("artifact_url"),
        failure_reason=row.get("failure_reason"),
        attempt_id=UUID(str(attempt_id)) if attempt_id else None,
        created_at=datetime.fromisoformat(str(row["created_at"])),
        updated_at=datetime.fromisoformat(str(row["updated_at"])),
    )
