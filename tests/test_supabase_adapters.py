"""Tests for Supabase adapter implementations."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from photo_enhancer.adapters.supabase_artifact_store import SupabaseArtifactStore
from photo_enhancer.adapters.supabase_ledger_repository import SupabaseLedgerRepository
from photo_enhancer.adapters.supabase_photo_repository import SupabasePhotoRepository
from photo_enhancer.domain.accounts import AccountRole, TransactionKind
from photo_enhancer.domain.photos import PhotoStatus


@dataclass
class FakeResponse:
    data: object


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": [], "insert": [], "update": []}
    )
    last_payload: object | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.last_payload = payload
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        self.last_filters = []
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def in_(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def lt(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeRpc:
    result: object

    def execute(self) -> FakeResponse:
        return FakeResponse(data=self.result)


@dataclass
class FakeBucket:
    uploads: list[dict[str, object]] = field(default_factory=list)

    def upload(self, path: str, file: bytes, file_options: dict[str, str]) -> None:
        self.uploads.append({"path": path, "file": file, "options": file_options})

    def get_public_url(self, path: str) -> str:
        return f"https://example.supabase.co/storage/v1/object/public/bucket/{path}"


@dataclass
class FakeStorage:
    bucket: FakeBucket = field(default_factory=FakeBucket)
    names: list[str] = field(default_factory=list)

    def from_(self, name: str) -> FakeBucket:
        self.names.append(name)
        return self.bucket


@dataclass
class FakeClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)
    rpc_results: dict[str, object] = field(default_factory=dict)
    rpc_calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    storage: FakeStorage = field(default_factory=FakeStorage)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name)
        return self.tables[name]

    def rpc(self, name: str, params: dict[str, object]) -> FakeRpc:
        self.rpc_calls.append((name, params))
        return FakeRpc(self.rpc_results.get(name, False))


def _photo_row(**overrides: object) -> dict[str, object]:
    now = datetime.now(tz=UTC).isoformat()
    row: dict[str, object] = {
        "id": str(uuid4()),
        "user_id": str(uuid4()),
        "source_url": "https://cdn.example.com/a.png",
        "artifact_url": None,
        "status": "PENDING",
        "failure_reason": None,
        "attempt_id": None,
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


def test_photo_repository_create_and_get() -> None:
    client = FakeClient()
    row = _photo_row()
    client.table("photos").queue("insert", [row])
    client.table("photos").queue("select", [row])
    repo = SupabasePhotoRepository(client)

    created = repo.create_photo(uuid4(), "https://cdn.example.com/a.png")
    fetched = repo.get_photo(created.id)

    assert created.status == PhotoStatus.PENDING
    assert fetched == created
    assert repo.get_photo(uuid4()) is None


def test_photo_repository_begin_processing_filters_on_status() -> None:
    client = FakeClient()
    attempt_id = uuid4()
    row = _photo_row(status="PROCESSING", attempt_id=str(attempt_id))
    client.table("photos").queue("update", [row])
    repo = SupabasePhotoRepository(client)

    started = repo.begin_processing(uuid4(), attempt_id)

    assert started.attempt_id == attempt_id
    table = client.table("photos")
    assert table.last_payload["status"] == "PROCESSING"
    statuses = dict(table.last_filters)["status"]
    assert sorted(statuses) == ["FAILED", "PENDING"]
    assert repo.begin_processing(uuid4(), uuid4()) is None


def test_photo_repository_transitions_are_guarded_by_attempt() -> None:
    client = FakeClient()
    attempt_id = uuid4()
    client.table("photos").queue("update", [_photo_row(status="COMPLETED")])
    repo = SupabasePhotoRepository(client)

    assert repo.complete(uuid4(), attempt_id, "https://x/a.png") is True
    filters = dict(client.table("photos").last_filters)
    assert filters["status"] == "PROCESSING"
    assert filters["attempt_id"] == str(attempt_id)
    assert repo.fail(uuid4(), attempt_id, "boom") is False


def test_photo_repository_lists_stale_rows() -> None:
    client = FakeClient()
    client.table("photos").queue("select", [_photo_row(status="PROCESSING")])
    repo = SupabasePhotoRepository(client)

    stale = repo.list_stale_processing(datetime.now(tz=UTC))

    assert [photo.status for photo in stale] == [PhotoStatus.PROCESSING]


def test_ledger_repository_reads_account() -> None:
    client = FakeClient()
    account_id = uuid4()
    client.table("accounts").queue(
        "select",
        [
            {
                "id": str(account_id),
                "role": "ADMIN",
                "credits": 3,
                "free_enhancements_used": None,
                "subscription_plan": "pro",
                "subscription_id": "sub_1",
            }
        ],
    )
    repo = SupabaseLedgerRepository(client)

    account = repo.get_account(account_id)

    assert account.role == AccountRole.ADMIN
    assert account.credits == 3
    assert account.free_enhancements_used == 0
    assert repo.get_account(uuid4()) is None


def test_ledger_repository_calls_database_functions() -> None:
    client = FakeClient(rpc_results={"debit_credits": True, "grant_credits": False})
    repo = SupabaseLedgerRepository(client)
    account_id = uuid4()

    assert repo.debit_if_sufficient(account_id, 1, "attempt-1") is True
    assert repo.grant(account_id, 10, TransactionKind.PURCHASE, "evt_1") is False
    assert repo.release("attempt-1") is False

    names = [name for name, _ in client.rpc_calls]
    assert names == ["debit_credits", "grant_credits", "release_reservation"]
    assert client.rpc_calls[1][1] == {
        "p_account_id": str(account_id),
        "p_amount": 10,
        "p_kind": "PURCHASE",
        "p_external_ref": "evt_1",
    }


def test_ledger_repository_clear_subscription() -> None:
    client = FakeClient()
    account_id = uuid4()
    client.table("accounts").queue("update", [{"id": str(account_id)}])
    repo = SupabaseLedgerRepository(client)

    assert repo.clear_subscription("sub_1") == account_id
    assert client.table("accounts").last_payload == {
        "subscription_plan": None,
        "subscription_id": None,
    }
    assert repo.clear_subscription("sub_1") is None


def test_ledger_repository_lists_transactions() -> None:
    client = FakeClient()
    account_id = uuid4()
    client.table("credit_transactions").queue(
        "select",
        [
            {
                "id": str(uuid4()),
                "account_id": str(account_id),
                "kind": "DEBIT",
                "amount": -1,
                "external_ref": "attempt-1",
                "created_at": "2026-01-02T03:04:05.123456+00:00",
            }
        ],
    )
    repo = SupabaseLedgerRepository(client)

    [entry] = repo.list_transactions(account_id, limit=10)

    assert entry.kind == TransactionKind.DEBIT
    assert entry.amount == -1


def test_artifact_store_uploads_and_returns_public_url() -> None:
    client = FakeClient()
    store = SupabaseArtifactStore(client, bucket="enhanced-photos")

    url = asyncio.run(store.put(b"bytes", "image/webp"))

    [upload] = client.storage.bucket.uploads
    assert client.storage.names == ["enhanced-photos"]
    assert upload["path"].startswith("enhanced_")
    assert upload["path"].endswith(".webp")
    assert upload["options"] == {"content-type": "image/webp"}
    assert url.endswith(upload["path"])
