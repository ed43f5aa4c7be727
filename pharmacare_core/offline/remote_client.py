# =============================================================================
# pharmacare_core/offline/remote_client.py
# HTTP Client for the Remote Collection API
# =============================================================================
"""
RemoteStoreClient - thin async wrapper over the backend's collection endpoints.

    GET    /{collection}
    POST   /{collection}
    PUT    /{collection}/{id}
    DELETE /{collection}/{id}

Every request carries ``Authorization: Bearer <token>`` and a hard deadline.
Anything other than a 2xx response with a JSON body raises RemoteStoreError;
callers treat all of those the same way.
"""

from __future__ import annotations
import asyncio
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import quote
import logging

import httpx

from pharmacare_core.errors import RemoteStoreError

logger = logging.getLogger(__name__)

TokenSource = Union[str, Callable[[], Optional[str]], None]


class RemoteStoreClient:
    """
    Usage:
        client = RemoteStoreClient("https://api.example.com", access_token="...")
        medicines = await client.get_all("medicines")
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str,
        access_token: TokenSource = None,
        timeout: float = 3.0,
        probe_timeout: float = 5.0,
        probe_path: str = "/medicines",
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API root; collection paths are appended to it
            access_token: Bearer token, or a callable returning the current one
            timeout: Deadline for CRUD requests (seconds)
            probe_timeout: Deadline for availability probes (seconds)
            probe_path: Endpoint hit by probe()
            headers: Extra headers sent with every request
            http_client: Pre-built client (tests inject one with MockTransport)
        """
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.probe_path = probe_path
        self._token = access_token
        self._headers = dict(headers or {})
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _auth_headers(self) -> Dict[str, str]:
        token = self._token() if callable(self._token) else self._token
        headers = {"Content-Type": "application/json", **self._headers}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def collection_path(collection: str, record_id: Optional[str] = None) -> str:
        path = f"/{quote(collection, safe='')}"
        if record_id is not None:
            path += f"/{quote(str(record_id), safe='')}"
        return path

    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Issue one request under a hard deadline."""
        if not self.is_configured:
            raise RemoteStoreError("Remote API is not configured", method=method, path=path)

        deadline = timeout if timeout is not None else self.timeout
        try:
            return await asyncio.wait_for(
                self._client.request(
                    method,
                    self._url(path),
                    json=payload,
                    headers=self._auth_headers(),
                    timeout=deadline,
                ),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            raise RemoteStoreError(
                f"Request timed out after {deadline}s", method=method, path=path
            )
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"Request failed: {e}", method=method, path=path)

    async def request_json(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request and decode the JSON body of a 2xx response."""
        response = await self._send(method, path, payload)

        if not response.is_success:
            raise RemoteStoreError(
                f"Remote store answered {response.status_code}",
                method=method,
                path=path,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise RemoteStoreError(
                "Response body is not JSON",
                method=method,
                path=path,
                status_code=response.status_code,
            )

    # =========================================================================
    # COLLECTION ENDPOINTS
    # =========================================================================

    async def get_all(self, collection: str) -> List[Dict[str, Any]]:
        data = await self.request_json("GET", self.collection_path(collection))
        if not isinstance(data, list):
            raise RemoteStoreError(
                "Expected a JSON array",
                method="GET",
                path=self.collection_path(collection),
            )
        return data

    async def create(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request_json("POST", self.collection_path(collection), payload)

    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request_json("PUT", self.collection_path(collection, record_id), patch)

    async def delete(self, collection: str, record_id: str) -> Any:
        return await self.request_json("DELETE", self.collection_path(collection, record_id))

    async def probe(self) -> bool:
        """Lightweight reachability check; never raises."""
        try:
            response = await self._send("HEAD", self.probe_path, timeout=self.probe_timeout)
        except RemoteStoreError as e:
            logger.debug(f"Probe failed: {e}")
            return False
        return response.is_success

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
