"""In-process repositories for single-instance deployments and tests."""

import threading
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from uuid import UUID, uuid4

from photo_enhancer.domain.accounts import (
    AccountRecord,
    AccountRole,
    TransactionKind,
    TransactionRecord,
)
from photo_enhancer.domain.photos import ENHANCEABLE_STATUSES, PhotoRecord, PhotoStatus
from photo_enhancer.services.enhancement import PhotoRepository
from photo_enhancer.services.ledger import LedgerRepository


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class InMemoryPhotoRepository(PhotoRepository):
    """Photo records guarded by a single lock."""

    photos: dict[UUID, PhotoRecord] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def create_photo(self, user_id: UUID, source_url: str) -> PhotoRecord:
        now = _now()
        photo = PhotoRecord(
            id=uuid4(),
            user_id=user_id,
            source_url=source_url,
            status=PhotoStatus.PENDING,
            artifact_url=None,
            failure_reason=None,
            attempt_id=None,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.photos[photo.id] = photo
        return photo

    def get_photo(self, photo_id: UUID) -> PhotoRecord | None:
        return self.photos.get(photo_id)

    def list_photos(self, user_id: UUID, limit: int) -> list[PhotoRecord]:
        owned = [photo for photo in self.photos.values() if photo.user_id == user_id]
        owned.sort(key=lambda photo: photo.created_at, reverse=True)
        return owned[:limit]

    def begin_processing(self, photo_id: UUID, attempt_id: UUID) -> PhotoRecord | None:
        with self._lock:
            photo = self.photos.get(photo_id)
            if photo is None or photo.status not in ENHANCEABLE_STATUSES:
                return None
            started = replace(
                photo,
                status=PhotoStatus.PROCESSING,
                failure_reason=None,
                attempt_id=attempt_id,
                updated_at=_now(),
            )
            self.photos[photo_id] = started
            return started

    def revert_processing(
        self,
        photo_id: UUID,
        attempt_id: UUID,
        status: PhotoStatus,
        failure_reason: str | None,
    ) -> bool:
        return self._transition(
            photo_id,
            attempt_id,
            status=status,
            failure_reason=failure_reason,
            attempt_id=None,
        )

    def complete(self, photo_id: UUID, attempt_id: UUID, artifact_url: str) -> bool:
        return self._transition(
            photo_id,
            attempt_id,
            status=PhotoStatus.COMPLETED,
            artifact_url=artifact_url,
            failure_reason=None,
        )

    def fail(self, photo_id: UUID, attempt_id: UUID, reason: str) -> bool:
        return self._transition(
            photo_id,
            attempt_id,
            status=PhotoStatus.FAILED,
            artifact_url=None,
            failure_reason=reason,
        )

    def list_stale_processing(self, older_than: datetime) -> list[PhotoRecord]:
        return [
            photo
            for photo in self.photos.values()
            if photo.status == PhotoStatus.PROCESSING and photo.updated_at < older_than
        ]

    def _transition(
        self, photo_id: UUID, attempt_id: UUID, **changes: object
    ) -> bool:
        with self._lock:
            photo = self.photos.get(photo_id)
            if (
                photo is None
                or photo.status != PhotoStatus.PROCESSING
                or photo.attempt_id != attempt_id
            ):
                return False
            self.photos[photo_id] = replace(photo, updated_at=_now(), **changes)
            return True


@dataclass
class InMemoryLedgerRepository(LedgerRepository):
    """Accounts and ledger entries with one lock per account.

    ``(kind, external_ref)`` uniqueness is enforced across all accounts by a
    separate index lock, always taken after the account lock.
    """

    accounts: dict[UUID, AccountRecord] = field(default_factory=dict)
    transactions: list[TransactionRecord] = field(default_factory=list)
    _refs: dict[tuple[TransactionKind, str], TransactionRecord] = field(
        default_factory=dict, repr=False
    )
    _account_locks: defaultdict[UUID, threading.Lock] = field(
        default_factory=lambda: defaultdict(threading.Lock), repr=False
    )
    _registry_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _index_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def create_account(
        self,
        role: AccountRole = AccountRole.USER,
        credits: int = 0,
        account_id: UUID | None = None,
    ) -> AccountRecord:
        """Provision an account (admin tooling and tests)."""
        account = AccountRecord(id=account_id or uuid4(), role=role, credits=credits)
        self.accounts[account.id] = account
        return account

    def get_account(self, account_id: UUID) -> AccountRecord | None:
        return self.accounts.get(account_id)

    def debit_if_sufficient(self, account_id: UUID, amount: int, reference: str) -> bool:
        with self._lock_for(account_id):
            account = self.accounts.get(account_id)
            if account is None or account.credits < amount:
                return False
            if not self._record(account_id, TransactionKind.DEBIT, -amount, reference):
                return False
            self.accounts[account_id] = replace(account, credits=account.credits - amount)
            return True

    def consume_free_use(self, account_id: UUID, allotment: int, reference: str) -> bool:
        with self._lock_for(account_id):
            account = self.accounts.get(account_id)
            if account is None or account.free_enhancements_used >= allotment:
                return False
            if not self._record(account_id, TransactionKind.FREE_USE, 0, reference):
                return False
            self.accounts[account_id] = replace(
                account, free_enhancements_used=account.free_enhancements_used + 1
            )
            return True

    def release(self, reference: str) -> bool:
        reservation = self._refs.get((TransactionKind.DEBIT, reference)) or self._refs.get(
            (TransactionKind.FREE_USE, reference)
        )
        if reservation is None:
            return False
        account_id = reservation.account_id
        with self._lock_for(account_id):
            refund = -reservation.amount
            if not self._record(account_id, TransactionKind.REFUND, refund, reference):
                return False
            account = self.accounts[account_id]
            if reservation.kind == TransactionKind.FREE_USE:
                account = replace(
                    account,
                    free_enhancements_used=max(0, account.free_enhancements_used - 1),
                )
            else:
                account = replace(account, credits=account.credits + refund)
            self.accounts[account_id] = account
            return True

    def grant(
        self, account_id: UUID, amount: int, kind: TransactionKind, external_ref: str
    ) -> bool:
        with self._lock_for(account_id):
            account = self.accounts.get(account_id)
            if account is None:
                return False
            if not self._record(account_id, kind, amount, external_ref):
                return False
            self.accounts[account_id] = replace(account, credits=account.credits + amount)
            return True

    def set_subscription(
        self, account_id: UUID, plan_id: str, subscription_id: str
    ) -> None:
        with self._lock_for(account_id):
            account = self.accounts[account_id]
            self.accounts[account_id] = replace(
                account, subscription_plan=plan_id, subscription_id=subscription_id
            )

    def clear_subscription(self, subscription_id: str) -> UUID | None:
        for account in list(self.accounts.values()):
            if account.subscription_id != subscription_id:
                continue
            with self._lock_for(account.id):
                current = self.accounts[account.id]
                self.accounts[account.id] = replace(
                    current, subscription_plan=None, subscription_id=None
                )
            return account.id
        return None

    def list_transactions(self, account_id: UUID, limit: int) -> list[TransactionRecord]:
        entries = [entry for entry in self.transactions if entry.account_id == account_id]
        return list(reversed(entries))[:limit]

    def _lock_for(self, account_id: UUID) -> threading.Lock:
        with self._registry_lock:
            return self._account_locks[account_id]

    def _record(
        self, account_id: UUID, kind: TransactionKind, amount: int, external_ref: str
    ) -> bool:
        with self._index_lock:
            key = (kind, external_ref)
            if key in self._refs:
                return False
            entry = TransactionRecord(
                id=uuid4(),
                account_id=account_id,
                kind=kind,
                amount=amount,
                external_ref=external_ref,
                created_at=_now(),
            )
            self._refs[key] = entry
            self.transactions.append(entry)
            return True
