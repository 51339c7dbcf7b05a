"""
In-memory stores and artifact helpers shared by the migration tests.
"""

import json
from pathlib import Path
from typing import Any

from migrations.supabase_to_payload.exceptions import DestinationStoreError, SourceStoreError


class FakeSourceStore:
    """In-memory Supabase: tables, auth users and storage buckets"""

    def __init__(
        self,
        tables: dict[str, list[dict]] | None = None,
        auth_users: list[dict] | None = None,
        buckets: dict[str, list[dict]] | None = None,
        failing_tables: set[str] | None = None,
        failing_buckets: set[str] | None = None,
    ):
        self.tables = tables or {}
        self.auth_users = auth_users or []
        self.buckets = buckets or {}
        self.failing_tables = failing_tables or set()
        self.failing_buckets = failing_buckets or set()
        self.fail_auth = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    async def fetch_table(self, table: str, select: str = "*", order_column: str = "created_at") -> list[dict]:
        if table in self.failing_tables:
            raise SourceStoreError(f'relation "public.{table}" does not exist')
        return list(self.tables.get(table, []))

    async def list_auth_users(self) -> list[dict]:
        if self.fail_auth:
            raise SourceStoreError("User not allowed")
        return list(self.auth_users)

    async def list_buckets(self) -> list[dict]:
        return [{"id": name, "name": name} for name in self.buckets]

    async def list_objects(self, bucket: str) -> list[dict]:
        if bucket in self.failing_buckets:
            raise SourceStoreError(f"Bucket {bucket} not found")
        return list(self.buckets[bucket])

    def public_url(self, bucket: str, name: str) -> str:
        return f"https://project.supabase.co/storage/v1/object/public/{bucket}/{name}"


class FakeDestinationStore:
    """In-memory Payload keyed by collection and document id"""

    def __init__(self, fail_when=None):
        self.collections: dict[str, dict[str, dict]] = {}
        self.fail_when = fail_when
        self.calls: list[tuple[str, str]] = []
        self.reachable = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    def _check(self, collection: str, data: dict[str, Any]):
        if self.fail_when and self.fail_when(collection, data):
            raise DestinationStoreError(
                "The following field is invalid: email", status_code=400, details="email: invalid"
            )

    async def ping(self):
        self.calls.append(("ping", ""))
        if not self.reachable:
            raise DestinationStoreError("Connection refused")

    async def create(self, collection: str, data: dict[str, Any]) -> dict:
        self.calls.append(("create", collection))
        self._check(collection, data)
        documents = self.collections.setdefault(collection, {})
        if data.get("id") in documents:
            raise DestinationStoreError("Value must be unique", status_code=400)
        documents[data["id"]] = dict(data)
        return dict(data)

    async def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict:
        self.calls.append(("update", collection))
        self._check(collection, data)
        document = self.collections[collection][record_id]
        document.update(data)
        return dict(document)

    async def find_by_id(self, collection: str, record_id: str) -> dict | None:
        self.calls.append(("find_by_id", collection))
        document = self.collections.get(collection, {}).get(record_id)
        return dict(document) if document else None

    async def find_all(self, collection: str) -> list[dict]:
        self.calls.append(("find_all", collection))
        return [dict(document) for document in self.collections.get(collection, {}).values()]

    def writes(self) -> int:
        return sum(1 for call, _ in self.calls if call in ("create", "update"))


def write_collection(directory: Path, name: str, records: Any) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.json"
    path.write_text(json.dumps(records, indent=2), encoding="utf-8")
    return path


def read_collection(directory: Path, name: str) -> Any:
    return json.loads((directory / f"{name}.json").read_text(encoding="utf-8"))

