"""Object storage client for verification documents.

Talks to a Supabase-Storage-compatible REST API:
- POST {base}/object/{bucket}/{path}          upload (x-upsert: true)
- DELETE {base}/object/{bucket}/{path}        delete (404 counts as gone)
- {base}/object/public/{bucket}/{path}        public reference returned to callers
"""

import logging
import re
from urllib.parse import quote

import httpx

from savebags.services.errors import RemoteUnavailable
from savebags.settings import get_settings

logger = logging.getLogger("uvicorn.error")

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._/-]+")


def object_path(merchant_id: str, slot: str, filename: str) -> str:
    """<merchant_id>/<slot>-<filename>, with unsafe characters replaced."""
    safe_name = _UNSAFE_PATH_CHARS.sub("_", filename.strip()) or "document"
    return f"{merchant_id}/{slot}-{safe_name}"


class DocumentStorage:
    """Client for the document bucket."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.storage_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.storage_api_key
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            headers = {}
            if self.api_key:
                headers = {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}
            self._http_client = httpx.AsyncClient(
                timeout=30.0,
                headers=headers,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def public_reference(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/public/{bucket}/{quote(path)}"

    async def upload(self, bucket: str, path: str, payload: bytes, mime_type: str) -> str:
        """Upload `payload` and return its public reference.

        Raises:
            RemoteUnavailable: On transport errors or a non-2xx response.
        """
        client = await self._get_client()
        url = f"{self.base_url}/object/{bucket}/{quote(path)}"
        try:
            response = await client.post(
                url,
                content=payload,
                headers={"Content-Type": mime_type, "x-upsert": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteUnavailable(
                f"Storage rejected upload ({e.response.status_code})",
                detail={"path": path},
            ) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable("Storage unreachable", detail={"path": path}) from e

        logger.info(f"[storage] uploaded {bucket}/{path} ({len(payload)} bytes)")
        return self.public_reference(bucket, path)

    async def delete(self, bucket: str, path: str) -> None:
        """Remove an object. A missing object counts as deleted.

        Raises:
            RemoteUnavailable: On transport errors or any other non-2xx response.
        """
        client = await self._get_client()
        url = f"{self.base_url}/object/{bucket}/{quote(path)}"
        try:
            response = await client.delete(url)
            if response.status_code == 404:
                return
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteUnavailable(
                f"Storage rejected delete ({e.response.status_code})",
                detail={"path": path},
            ) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable("Storage unreachable", detail={"path": path}) from e

        logger.info(f"[storage] deleted {bucket}/{path}")


_storage: DocumentStorage | None = None


def get_document_storage() -> DocumentStorage:
    global _storage
    if _storage is None:
        _storage = DocumentStorage()
    return _storage


async def close_document_storage() -> None:
    global _storage
    if _storage is not None:
        await _storage.close()
        _storage = None
