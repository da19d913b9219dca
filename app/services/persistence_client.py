"""
Client for the geofence REST API (create/update/delete/list)
"""
import logging
from typing import Any, List, Optional

import httpx

from app.core.config import settings
from app.core.errors import GeometryDecodeError, PersistenceError
from app.schemas.geofence import Geofence, GeofencePayload, PaginatedGeofences
from app.services.geometry_codec import record_to_geofence

logger = logging.getLogger(__name__)


class GeofenceApiClient:
    """Async client for the external geofence API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.GEOFENCE_API_URL).rstrip("/")
        self.timeout = timeout or settings.GEOFENCE_API_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self.client.request(method, self._url(path), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Geofence API {method} {path} failed: {e}")
            raise PersistenceError(f"Geofence API unreachable: {e}") from e

        if resp.status_code >= 400:
            message = self._error_message(resp)
            logger.error(f"Geofence API {method} {path} returned {resp.status_code}: {message}")
            raise PersistenceError(message, status_code=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return {}

        try:
            body = resp.json()
        except ValueError as e:
            raise PersistenceError("Geofence API returned a non-JSON response", resp.status_code) from e

        if isinstance(body, dict) and body.get("success") is False:
            raise PersistenceError(body.get("message") or "Geofence API reported a failure", resp.status_code)
        return body

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(body, dict):
            return body.get("message") or body.get("detail") or f"HTTP {resp.status_code}"
        return f"HTTP {resp.status_code}"

    @staticmethod
    def _unwrap_record(body: Any) -> dict:
        record = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(record, dict):
            raise PersistenceError("Geofence API returned an unexpected response")
        return record

    def _to_geofence(self, body: Any) -> Geofence:
        record = self._unwrap_record(body)
        try:
            return record_to_geofence(record)
        except GeometryDecodeError as e:
            raise PersistenceError(f"Geofence API returned unreadable geometry: {e.message}") from e

    async def create_geofence(self, payload: GeofencePayload) -> Geofence:
        body = await self._request("POST", "/geofences", json=payload.to_wire())
        return self._to_geofence(body)

    async def update_geofence(self, geofence_id: str, payload: GeofencePayload) -> Geofence:
        data = payload.to_wire()
        data["_id"] = geofence_id
        body = await self._request("PUT", f"/geofences/{geofence_id}", json=data)
        return self._to_geofence(body)

    async def delete_geofence(self, geofence_id: str) -> None:
        await self._request("DELETE", f"/geofences/{geofence_id}")

    async def list_geofences(
        self,
        page: int = 1,
        limit: int = settings.DEFAULT_PAGE_LIMIT,
        search_text: Optional[str] = None
    ) -> PaginatedGeofences:
        """
        Fetch one page of geofences. Records whose geometry cannot be decoded
        are skipped and counted instead of failing the whole page.
        """
        params = {"page": page, "limit": limit}
        path = "/geofences"
        if search_text:
            params["searchText"] = search_text
            path = "/geofences/search"

        body = await self._request("GET", path, params=params)
        records, total = self._unwrap_list(body)

        items: List[Geofence] = []
        skipped = 0
        for record in records:
            try:
                items.append(record_to_geofence(record))
            except GeometryDecodeError as e:
                skipped += 1
                logger.warning(f"Skipping geofence {record.get('_id')!r}: {e.message}")

        return PaginatedGeofences(
            items=items,
            total=total if total is not None else len(records),
            page=page,
            limit=limit,
            skipped=skipped,
        )

    @staticmethod
    def _unwrap_list(body: Any):
        """Accepts {data: [...], total} and {data: {data: [...], total}, total}."""
        if isinstance(body, list):
            return [r for r in body if isinstance(r, dict)], None

        if not isinstance(body, dict):
            raise PersistenceError("Geofence API returned an unexpected list response")

        data = body.get("data", [])
        total = body.get("total")
        if isinstance(data, dict):
            total = total or data.get("total")
            data = data.get("data", [])
        if not isinstance(data, list):
            raise PersistenceError("Geofence API returned an unexpected list response")
        return [r for r in data if isinstance(r, dict)], total
