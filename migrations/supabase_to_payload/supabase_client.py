"""
Supabase source store client.

Talks to the three Supabase services the exporter needs:
- PostgREST (``/rest/v1``) for application tables
- GoTrue admin API (``/auth/v1/admin/users``) for the auth user registry
- Storage API (``/storage/v1``) for buckets, objects and public URLs

All requests use the service role key, which bypasses row level security.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from migrations.supabase_to_payload.exceptions import MigrationConfigError, SourceStoreError

logger = logging.getLogger(__name__)


class SupabaseClient:
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        url: str | None,
        service_key: str | None,
        *,
        page_size: int = 1000,
        auth_page_size: int = 1000,
        storage_page_size: int = 1000,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Supabase client.

        Args:
            url: Supabase project URL (e.g., https://xyz.supabase.co)
            service_key: Service role key (not the anon key)
            page_size: Rows per PostgREST request
            auth_page_size: Users per admin listing page
            storage_page_size: Objects per storage listing request
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests

        Raises:
            MigrationConfigError: If the URL or key is missing
        """
        if not url or not service_key:
            raise MigrationConfigError(
                "Missing Supabase configuration: SUPABASE_URL and SUPABASE_SERVICE_KEY are required"
            )
        self.base_url = url.rstrip("/")
        self.page_size = page_size
        self.auth_page_size = auth_page_size
        self.storage_page_size = storage_page_size
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except httpx.HTTPStatusError as e:
            raise SourceStoreError(
                f"Supabase error {e.response.status_code} on {path}: {self._error_message(e.response)}"
            ) from e
        except httpx.RequestError as e:
            raise SourceStoreError(f"Failed to reach Supabase at {path}: {e}") from e
        except ValueError as e:
            raise SourceStoreError(f"Invalid JSON from Supabase at {path}: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(data, dict):
            return data.get("message") or data.get("msg") or data.get("error_description") or str(data)
        return str(data)

    # =========================================================================
    # Tables
    # =========================================================================

    async def fetch_table(self, table: str, select: str = "*", order_column: str = "created_at") -> list[dict]:
        """Fetch every row of a table, ordered ascending by ``order_column``"""
        rows: list[dict] = []
        offset = 0
        while True:
            page = await self._request(
                "GET",
                f"/rest/v1/{table}",
                params={
                    "select": select,
                    "order": f"{order_column}.asc",
                    "limit": self.page_size,
                    "offset": offset,
                },
            )
            page = page or []
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size
        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    # =========================================================================
    # Auth
    # =========================================================================

    async def list_auth_users(self) -> list[dict]:
        """List every user of the auth registry through the paged admin API"""
        users: list[dict] = []
        page = 1
        while True:
            data = await self._request(
                "GET",
                "/auth/v1/admin/users",
                params={"page": page, "per_page": self.auth_page_size},
            )
            batch = (data or {}).get("users", []) if isinstance(data, dict) else (data or [])
            users.extend(batch)
            if len(batch) < self.auth_page_size:
                break
            page += 1
        return users

    # =========================================================================
    # Storage
    # =========================================================================

    async def list_buckets(self) -> list[dict]:
        return await self._request("GET", "/storage/v1/bucket") or []

    async def list_objects(self, bucket: str, prefix: str = "") -> list[dict]:
        """List every object in a bucket, descending into folders.

        Returned object names are relative to the bucket root.
        """
        objects: list[dict] = []
        offset = 0
        while True:
            page = await self._request(
                "POST",
                f"/storage/v1/object/list/{bucket}",
                json={
                    "prefix": prefix,
                    "limit": self.storage_page_size,
                    "offset": offset,
                    "sortBy": {"column": "name", "order": "asc"},
                },
            )
            page = page or []
            for entry in page:
                name = f"{prefix}/{entry['name']}" if prefix else entry["name"]
                # Folders are listed as placeholder entries without an id
                if entry.get("id") is None:
                    objects.extend(await self.list_objects(bucket, name))
                else:
                    objects.append({**entry, "name": name})
            if len(page) < self.storage_page_size:
                break
            offset += self.storage_page_size
        return objects

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{quote(bucket)}/{quote(name)}"
