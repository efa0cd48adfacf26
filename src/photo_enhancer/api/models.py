"""Pydantic models for API request and response payloads."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from photo_enhancer.domain.accounts import AccountRecord, TransactionRecord
from photo_enhancer.domain.photos import PhotoRecord


class RegisterPhotoRequest(BaseModel):
    """Register an uploaded original."""

    source_url: str = Field(min_length=1)


class EnhanceRequest(BaseModel):
    """Start enhancement of a registered photo."""

    photo_id: UUID


class AdminGrantRequest(BaseModel):
    """Manual credit grant by an administrator."""

    amount: int = Field(gt=0)
    reference: str = Field(min_length=1)


class RecoverStaleRequest(BaseModel):
    older_than_seconds: float | None = Field(default=None, gt=0)


class PhotoResponse(BaseModel):
    id: UUID
    source_url: str
    status: str
    artifact_url: str | None
    failure_reason: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, photo: PhotoRecord) -> "PhotoResponse":
        return cls(
            id=photo.id,
            source_url=photo.source_url,
            status=photo.status.value,
            artifact_url=photo.artifact_url,
            failure_reason=photo.failure_reason,
            created_at=photo.created_at,
            updated_at=photo.updated_at,
        )


class TransactionResponse(BaseModel):
    id: UUID
    kind: str
    amount: int
    external_ref: str
    created_at: datetime

    @classmethod
    def from_record(cls, entry: TransactionRecord) -> "TransactionResponse":
        return cls(
            id=entry.id,
            kind=entry.kind.value,
            amount=entry.amount,
            external_ref=entry.external_ref,
            created_at=entry.created_at,
        )


class AccountResponse(BaseModel):
    """Account balance as shown to its owner or an admin."""

    id: UUID
    role: str
    credits: int
    unlimited: bool
    free_enhancements_remaining: int
    subscription_plan: str | None
    transactions: list[TransactionResponse]

    @classmethod
    def build(
        cls,
        account: AccountRecord,
        free_remaining: int,
        transactions: list[TransactionRecord],
    ) -> "AccountResponse":
        return cls(
            id=account.id,
            role=account.role.value,
            credits=account.credits,
            unlimited=account.is_admin,
            free_enhancements_remaining=free_remaining,
            subscription_plan=account.subscription_plan,
            transactions=[TransactionResponse.from_record(entry) for entry in transactions],
        )
