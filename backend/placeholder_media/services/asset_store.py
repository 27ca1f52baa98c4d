from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import quote

import httpx

from placeholder_media.core.config import Settings, settings as default_settings
from placeholder_media.core.errors import RemoteStoreError
from placeholder_media.schemas.media import MediaKindLiteral

logger = logging.getLogger(__name__)

_MAX_RESULTS = 500


def _path(value: str) -> str:
    return quote(value.strip("/"), safe="/")


def format_context(context: Mapping[str, str]) -> str:
    """Encode a context mapping as `key=value|key=value`, escaping the separators."""

    def esc(text: str) -> str:
        return str(text).replace("\\", "\\\\").replace("|", "\\|").replace("=", "\\=")

    return "|".join(f"{esc(key)}={esc(value)}" for key, value in context.items())


def sign_params(params: Mapping[str, Any], api_secret: str) -> str:
    """Upload-API signature: sorted `k=v` pairs joined by `&`, secret appended, SHA-1."""
    cleaned = {key: value for key, value in params.items() if value not in (None, "")}
    to_sign = "&".join(f"{key}={cleaned[key]}" for key in sorted(cleaned))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryClient:
    """Management-API client for the remote asset store.

    Every call is a single awaited request. Non-2xx replies raise `RemoteStoreError`
    carrying the upstream status; transport failures raise it with status 502.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = config or default_settings
        self.cloud_name = self._settings.cloudinary_cloud_name
        self._api_key = self._settings.cloudinary_api_key or ""
        self._api_secret = self._settings.cloudinary_api_secret or ""
        base_url = f"{self._settings.cloudinary_api_base_url.rstrip('/')}/{self.cloud_name}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            auth=(self._api_key, self._api_secret),
            timeout=self._settings.remote_timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CloudinaryClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        public_id: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "remote_store_transport_failed",
                extra={"operation": operation, "public_id": public_id, "error": str(exc)},
            )
            raise RemoteStoreError(
                f"{operation} failed: {exc}", status_code=502, operation=operation, public_id=public_id
            ) from exc
        if not resp.is_success:
            message = _error_message(resp)
            logger.warning(
                "remote_store_call_failed",
                extra={"operation": operation, "public_id": public_id, "status_code": resp.status_code, "error": message},
            )
            raise RemoteStoreError(
                f"{operation} failed: {message}",
                status_code=resp.status_code,
                operation=operation,
                public_id=public_id,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RemoteStoreError(
                f"{operation} returned invalid JSON", status_code=502, operation=operation, public_id=public_id
            ) from exc
        return payload if isinstance(payload, dict) else {"items": payload}

    # Folders

    async def list_root_folders(self) -> list[dict[str, Any]]:
        payload = await self._request("GET", "/folders", operation="list_root_folders")
        return list(payload.get("folders") or [])

    async def list_subfolders(self, path: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", f"/folders/{_path(path)}", operation="list_subfolders", public_id=path)
        return list(payload.get("folders") or [])

    async def create_folder(self, path: str) -> dict[str, Any]:
        return await self._request("POST", f"/folders/{_path(path)}", operation="create_folder", public_id=path)

    # Tags and resources

    async def list_tags(self, resource_type: MediaKindLiteral = "image") -> list[str]:
        payload = await self._request(
            "GET", f"/tags/{resource_type}", operation="list_tags", params={"max_results": _MAX_RESULTS}
        )
        return [str(tag) for tag in payload.get("tags") or []]

    async def get_resource(self, public_id: str, resource_type: MediaKindLiteral = "image") -> dict[str, Any]:
        return await self._request(
            "GET", f"/resources/{resource_type}/upload/{_path(public_id)}", operation="get_resource", public_id=public_id
        )

    async def update_resource(
        self,
        public_id: str,
        *,
        tags: Iterable[str] | None = None,
        context: Mapping[str, str] | None = None,
        resource_type: MediaKindLiteral = "image",
    ) -> dict[str, Any]:
        """Overwrite tags and/or context on one asset; omitted fields stay as they are."""
        data: dict[str, str] = {}
        if tags is not None:
            data["tags"] = ",".join(tags)
        if context is not None:
            data["context"] = format_context(context)
        return await self._request(
            "POST",
            f"/resources/{resource_type}/upload/{_path(public_id)}",
            operation="update_resource",
            public_id=public_id,
            data=data,
        )

    async def rename_resource(
        self,
        from_public_id: str,
        to_public_id: str,
        *,
        resource_type: MediaKindLiteral = "image",
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "from_public_id": from_public_id,
            "to_public_id": to_public_id,
            "overwrite": "true",
            "timestamp": str(int(time.time())),
        }
        params["signature"] = sign_params(params, self._api_secret)
        params["api_key"] = self._api_key
        return await self._request(
            "POST", f"/{resource_type}/rename", operation="rename_resource", public_id=from_public_id, data=params
        )

    async def list_resources_by_tag(self, tag: str, resource_type: MediaKindLiteral = "image") -> list[str]:
        payload = await self._request(
            "GET",
            f"/resources/{resource_type}/tags/{quote(tag, safe='')}",
            operation="list_resources_by_tag",
            params={"max_results": _MAX_RESULTS},
        )
        return [str(item["public_id"]) for item in payload.get("resources") or [] if item.get("public_id")]

    async def list_resources_by_prefix(self, prefix: str, resource_type: MediaKindLiteral = "image") -> list[str]:
        payload = await self._request(
            "GET",
            f"/resources/{resource_type}/upload",
            operation="list_resources_by_prefix",
            params={"prefix": prefix, "max_results": _MAX_RESULTS},
        )
        return [str(item["public_id"]) for item in payload.get("resources") or [] if item.get("public_id")]


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or f"HTTP {resp.status_code}")
    return str(error or f"HTTP {resp.status_code}")
