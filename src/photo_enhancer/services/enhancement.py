"""Enhancement pipeline: fetch, analyze, generate, store, commit."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from photo_enhancer.domain.accounts import ReservationToken
from photo_enhancer.domain.analysis import AnalysisResult
from photo_enhancer.domain.photos import FetchedImage, PhotoRecord, PhotoStatus
from photo_enhancer.errors import (
    EmptyGenerationError,
    EnhancementError,
    InsufficientCreditsError,
    NotFoundError,
    ProviderError,
    StateError,
    StepTimeoutError,
    StorageError,
)
from photo_enhancer.services.analysis import analysis_or_default, build_directive
from photo_enhancer.services.images import detect_mime_type
from photo_enhancer.services.ledger import CreditLedger
from photo_enhancer.services.resilience import (
    RetryConfig,
    RetryPolicy,
    run_with_timeout,
)

_logger = logging.getLogger(__name__)

STALE_REASON = "Processing timed out"


class PhotoRepository(Protocol):
    """Persistence interface for photo records.

    Status transitions are compare-and-swap: they return False (or None)
    when the record is not in the expected state.
    """

    def create_photo(self, user_id: UUID, source_url: str) -> PhotoRecord:
        """Create a PENDING photo record."""

    def get_photo(self, photo_id: UUID) -> PhotoRecord | None:
        """Return a photo by id, if present."""

    def list_photos(self, user_id: UUID, limit: int) -> list[PhotoRecord]:
        """Return a user's most recent photos."""

    def begin_processing(self, photo_id: UUID, attempt_id: UUID) -> PhotoRecord | None:
        """Move PENDING/FAILED to PROCESSING under a new attempt id."""

    def revert_processing(
        self,
        photo_id: UUID,
        attempt_id: UUID,
        status: PhotoStatus,
        failure_reason: str | None,
    ) -> bool:
        """Undo ``begin_processing`` when the attempt never started."""

    def complete(self, photo_id: UUID, attempt_id: UUID, artifact_url: str) -> bool:
        """Move PROCESSING to COMPLETED for the given attempt."""

    def fail(self, photo_id: UUID, attempt_id: UUID, reason: str) -> bool:
        """Move PROCESSING to FAILED for the given attempt."""

    def list_stale_processing(self, older_than: datetime) -> list[PhotoRecord]:
        """Return PROCESSING records not updated since ``older_than``."""


class ImageFetcher(Protocol):
    """Downloads and validates source images."""

    async def fetch(self, url: str) -> FetchedImage:
        """Return the image at ``url``; raise ValidationError on bad input."""


class EnhancementClient(Protocol):
    """Interface for the AI provider."""

    async def analyze(self, image: bytes, mime_type: str) -> str:
        """Return raw analysis text for the image."""

    async def generate(self, image: bytes, mime_type: str, directive: str) -> bytes:
        """Return enhanced image bytes, or empty bytes if none were produced."""


class ArtifactStore(Protocol):
    """Blob storage for enhanced images."""

    async def put(self, content: bytes, content_type: str) -> str:
        """Upload bytes and return their public URL."""


@dataclass(frozen=True)
class EnhancementResult:
    """Outcome of a successful enhancement."""

    photo_id: UUID
    artifact_url: str
    analysis: AnalysisResult
    used_default_analysis: bool
    original_size: int
    enhanced_size: int
    processing_seconds: float


def _default_storage_retry() -> RetryPolicy:
    return RetryPolicy(RetryConfig(max_attempts=3, per_attempt_timeout=15.0))


@dataclass
class EnhancementOrchestrator:
    """Drives a photo record through the enhancement pipeline."""

    photo_repository: PhotoRepository
    ledger: CreditLedger
    fetcher: ImageFetcher
    client: EnhancementClient
    store: ArtifactStore
    ai_retry: RetryPolicy = field(default_factory=RetryPolicy)
    storage_retry: RetryPolicy = field(default_factory=_default_storage_retry)
    fetch_timeout_seconds: float = 10.0
    total_budget_seconds: float = 50.0
    _inflight: dict[UUID, asyncio.Task] = field(
        default_factory=dict, init=False, repr=False
    )

    def register_photo(self, user_id: UUID, source_url: str) -> PhotoRecord:
        """Create a PENDING record for an uploaded original."""
        if not source_url.strip():
            raise ValueError("source_url is required")
        return self.photo_repository.create_photo(user_id, source_url.strip())

    def get_photo(self, photo_id: UUID, account_id: UUID) -> PhotoRecord:
        """Return a photo owned by ``account_id``."""
        photo = self.photo_repository.get_photo(photo_id)
        if photo is None or photo.user_id != account_id:
            raise NotFoundError(photo_id)
        return photo

    def list_photos(self, account_id: UUID, limit: int = 20) -> list[PhotoRecord]:
        return self.photo_repository.list_photos(account_id, limit)

    async def enhance(self, photo_id: UUID, account_id: UUID) -> EnhancementResult:
        """Enhance a photo end to end.

        The pipeline runs in its own task. Cancelling the caller does not
        stop it, and the final state transition still applies.
        """
        photo = self.get_photo(photo_id, account_id)
        if not photo.is_enhanceable:
            raise StateError(f"Photo {photo_id} is {photo.status} and cannot be enhanced")
        if not self.ledger.has_capacity(account_id):
            account = self.ledger.get_account(account_id)
            raise InsufficientCreditsError(
                balance=account.credits, required=self.ledger.enhancement_cost
            )

        started, token = self._begin(photo)
        assert started.attempt_id is not None
        task = asyncio.create_task(self._run_pipeline(started, token))
        self._inflight[started.attempt_id] = task
        task.add_done_callback(partial(self._forget, started.attempt_id))
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for in-flight pipelines, e.g. before shutdown."""
        if self._inflight:
            await asyncio.gather(*self._inflight.values(), return_exceptions=True)

    def recover_stale(self, older_than_seconds: float) -> list[UUID]:
        """Fail attempts stuck in PROCESSING and release their reservations.

        The threshold never drops below the pipeline budget, and attempts
        still running in this process are left alone.
        """
        threshold = max(older_than_seconds, self.total_budget_seconds)
        cutoff = datetime.now(tz=UTC) - timedelta(seconds=threshold)
        recovered: list[UUID] = []
        for photo in self.photo_repository.list_stale_processing(cutoff):
            if photo.attempt_id is None or photo.attempt_id in self._inflight:
                continue
            if not self.photo_repository.fail(photo.id, photo.attempt_id, STALE_REASON):
                continue
            self.ledger.release_reference(str(photo.attempt_id))
            recovered.append(photo.id)
            _logger.warning(
                "Recovered stale enhancement attempt",
                extra={"photo_id": str(photo.id), "attempt_id": str(photo.attempt_id)},
            )
        return recovered

    def _begin(self, photo: PhotoRecord) -> tuple[PhotoRecord, ReservationToken]:
        attempt_id = uuid4()
        started = self.photo_repository.begin_processing(photo.id, attempt_id)
        if started is None:
            raise StateError(f"Photo {photo.id} is already being enhanced")
        try:
            token = self.ledger.reserve(photo.user_id, reference=str(attempt_id))
        except Exception:
            self.photo_repository.revert_processing(
                photo.id, attempt_id, photo.status, photo.failure_reason
            )
            raise
        _logger.info(
            "Photo status updated to PROCESSING",
            extra={
                "photo_id": str(photo.id),
                "attempt_id": str(attempt_id),
                "reservation": str(token.source),
            },
        )
        return started, token

    async def _run_pipeline(
        self, photo: PhotoRecord, token: ReservationToken
    ) -> EnhancementResult:
        assert photo.attempt_id is not None
        started_at = time.monotonic()
        deadline = asyncio.get_running_loop().time() + self.total_budget_seconds
        try:
            async with asyncio.timeout_at(deadline):
                image = await run_with_timeout(
                    self.fetcher.fetch(photo.source_url),
                    self.fetch_timeout_seconds,
                    step="fetch",
                )
                analysis, used_defaults = await self._analyze(image, deadline)
                directive = build_directive(analysis, used_defaults=used_defaults)
                enhanced = await self._generate(image, directive, deadline)
                artifact_url = await self._store(photo, enhanced, deadline)
        except TimeoutError as exc:
            overrun = StepTimeoutError("enhancement", self.total_budget_seconds)
            self._abandon(photo, token, overrun)
            raise overrun from exc
        except Exception as exc:
            self._abandon(photo, token, exc)
            raise

        if not self.photo_repository.complete(photo.id, photo.attempt_id, artifact_url):
            _logger.error(
                "Attempt was superseded before commit",
                extra={"photo_id": str(photo.id), "artifact_url": artifact_url},
            )
            raise StateError(f"Enhancement attempt for photo {photo.id} was superseded")

        elapsed = time.monotonic() - started_at
        _logger.info(
            "Enhancement completed",
            extra={
                "photo_id": str(photo.id),
                "artifact_url": artifact_url,
                "seconds": round(elapsed, 3),
                "confidence": analysis.confidence,
            },
        )
        return EnhancementResult(
            photo_id=photo.id,
            artifact_url=artifact_url,
            analysis=analysis,
            used_default_analysis=used_defaults,
            original_size=image.size,
            enhanced_size=len(enhanced),
            processing_seconds=elapsed,
        )

    async def _analyze(
        self, image: FetchedImage, deadline: float
    ) -> tuple[AnalysisResult, bool]:
        try:
            raw = await self.ai_retry.execute(
                lambda: self.client.analyze(image.content, image.mime_type),
                step="analyze",
                deadline=deadline,
            )
        except EnhancementError:
            raise
        except Exception as exc:
            raise ProviderError(f"Analysis failed: {exc}", retryable=False) from exc
        return analysis_or_default(raw)

    async def _generate(
        self, image: FetchedImage, directive: str, deadline: float
    ) -> bytes:
        async def attempt() -> bytes:
            content = await self.client.generate(
                image.content, image.mime_type, directive
            )
            if not content:
                raise EmptyGenerationError
            return content

        try:
            return await self.ai_retry.execute(
                attempt, step="generate", deadline=deadline
            )
        except EnhancementError:
            raise
        except Exception as exc:
            raise ProviderError(f"Generation failed: {exc}", retryable=False) from exc

    async def _store(self, photo: PhotoRecord, content: bytes, deadline: float) -> str:
        content_type = detect_mime_type(content) or "image/png"
        try:
            return await self.storage_retry.execute(
                lambda: self.store.put(content, content_type),
                step="store",
                deadline=deadline,
            )
        except Exception as exc:
            _logger.error(
                "Artifact upload failed after retries",
                extra={"photo_id": str(photo.id), "enhanced_size": len(content)},
            )
            if isinstance(exc, StorageError):
                raise
            raise StorageError(f"Artifact upload failed: {exc}") from exc

    def _abandon(
        self, photo: PhotoRecord, token: ReservationToken, exc: Exception
    ) -> None:
        assert photo.attempt_id is not None
        if isinstance(exc, EnhancementError):
            reason = exc.reason
        else:
            reason = "Unexpected error during enhancement"
            _logger.exception(
                "Unexpected enhancement failure", extra={"photo_id": str(photo.id)}
            )
        self.photo_repository.fail(photo.id, photo.attempt_id, reason)
        try:
            self.ledger.release(token)
        except Exception:
            _logger.exception(
                "Failed to release reservation",
                extra={"photo_id": str(photo.id), "reference": token.reference},
            )
        _logger.warning(
            "Photo status updated to FAILED",
            extra={"photo_id": str(photo.id), "reason": reason},
        )

    def _forget(self, attempt_id: UUID, task: asyncio.Task) -> None:
        self._inflight.pop(attempt_id, None)
        if not task.cancelled():
            task.exception()
