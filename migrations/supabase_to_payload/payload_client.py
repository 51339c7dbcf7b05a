"""
Payload CMS destination store client.

Uses the Payload REST API (``/api/<collection>``) authenticated with a
collection API key. Only the operations the importer and validator need are
implemented: create, update, find-by-id and paginated find.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from migrations.supabase_to_payload.exceptions import DestinationStoreError, MigrationConfigError

logger = logging.getLogger(__name__)


class PayloadClient:
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        url: str | None,
        secret: str | None,
        *,
        auth_collection: str = "users",
        page_size: int = 1000,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not url or not secret:
            raise MigrationConfigError("Missing Payload configuration: PAYLOAD_URL and PAYLOAD_SECRET are required")
        self.base_url = url.rstrip("/")
        self.page_size = page_size
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api",
            headers={"Authorization": f"{auth_collection} API-Key {secret}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "PayloadClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise DestinationStoreError(f"Failed to reach Payload at {path}: {e}") from e

        if response.is_error:
            details = self._error_details(response)
            raise DestinationStoreError(
                f"Payload error {response.status_code} on {path}: {details}",
                status_code=response.status_code,
                details=details,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DestinationStoreError(f"Invalid JSON from Payload at {path}: {e}") from e

    @staticmethod
    def _error_details(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        errors = data.get("errors") if isinstance(data, dict) else None
        if errors:
            messages = []
            for error in errors if isinstance(errors, list) else [errors]:
                if not isinstance(error, dict):
                    messages.append(str(error))
                    continue
                message = error.get("message", str(error))
                field_errors = error["data"].get("errors") if isinstance(error.get("data"), dict) else None
                if field_errors:
                    fields = ", ".join(
                        f"{fe.get('path') or fe.get('field')}: {fe.get('message')}" if isinstance(fe, dict) else str(fe)
                        for fe in field_errors
                    )
                    message = f"{message} ({fields})"
                messages.append(message)
            return "; ".join(messages)
        return str(data)

    async def ping(self):
        """Check that the API is reachable and the key is accepted"""
        await self._request("GET", "/access")

    async def create(self, collection: str, data: dict[str, Any]) -> dict:
        result = await self._request("POST", f"/{collection}", json=data, params={"depth": 0})
        return (result or {}).get("doc", result or {})

    async def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict:
        result = await self._request(
            "PATCH", f"/{collection}/{quote(str(record_id), safe='')}", json=data, params={"depth": 0}
        )
        return (result or {}).get("doc", result or {})

    async def find_by_id(self, collection: str, record_id: str) -> dict | None:
        try:
            return await self._request("GET", f"/{collection}/{quote(str(record_id), safe='')}", params={"depth": 0})
        except DestinationStoreError as e:
            if e.status_code == 404:
                return None
            raise

    async def find_all(self, collection: str) -> list[dict]:
        """Fetch every document of a collection, page by page"""
        docs: list[dict] = []
        page = 1
        while True:
            data = await self._request(
                "GET",
                f"/{collection}",
                params={"limit": self.page_size, "page": page, "depth": 0},
            )
            data = data or {}
            docs.extend(data.get("docs", []))
            if not data.get("hasNextPage"):
                break
            page += 1
        logger.debug(f"Fetched {len(docs)} documents from {collection}")
        return docs
