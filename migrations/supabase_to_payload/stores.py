"""
Capability interfaces of the external stores.

The pipeline only relies on these operations; the HTTP clients in
``supabase_client`` and ``payload_client`` implement them, and tests use
in-memory fakes.
"""

from typing import Any, Protocol


class SourceStore(Protocol):
    async def fetch_table(self, table: str, select: str = "*", order_column: str = "created_at") -> list[dict]: ...

    async def list_auth_users(self) -> list[dict]: ...

    async def list_buckets(self) -> list[dict]: ...

    async def list_objects(self, bucket: str) -> list[dict]: ...

    def public_url(self, bucket: str, name: str) -> str: ...


class DestinationStore(Protocol):
    async def ping(self) -> None: ...

    async def create(self, collection: str, data: dict[str, Any]) -> dict: ...

    async def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict: ...

    async def find_by_id(self, collection: str, record_id: str) -> dict | None: ...

    async def find_all(self, collection: str) -> list[dict]: ...
