from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from placeholder_media.core import metrics
from placeholder_media.core.config import settings
from placeholder_media.core.errors import MediaValidationError, RemoteStoreError
from placeholder_media.services.registry import MediaRegistry
from placeholder_media.services.transforms import build_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProxiedMedia:
    content: bytes
    content_type: str
    url: str
    cache_headers: dict[str, str] = field(default_factory=dict)


def _content_type(resp: httpx.Response, url: str, kind: str) -> str:
    header = (resp.headers.get("content-type") or "").split(";", 1)[0].strip()
    if header:
        return header
    guessed, _ = mimetypes.guess_type(urlsplit(url).path)
    return guessed or ("video/mp4" if kind == "video" else "application/octet-stream")


async def serve(
    registry: MediaRegistry,
    id_or_placeholder: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> ProxiedMedia:
    """Resolve an id, fetch the full-resolution rendition and hand back cacheable bytes.

    Ids are treated as content-addressed: the bytes behind an id are never expected to
    change, which is what makes the immutable one-year cache policy safe. An asset that
    is replaced in place under the same id stays stale in downstream caches.
    """
    key = (id_or_placeholder or "").strip()
    if not key:
        raise MediaValidationError("id is required")
    descriptor = registry.resolve(key)
    url, kind = build_url(descriptor, use_defaults=False)
    if urlsplit(url).netloc != urlsplit(settings.cloudinary_delivery_base_url).netloc:
        raise MediaValidationError("only assets on the delivery host can be proxied")

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=settings.remote_timeout_seconds, follow_redirects=True)
    try:
        try:
            resp = await http.get(url)
        except httpx.HTTPError as exc:
            metrics.record_proxy_upstream_failure()
            logger.warning("media_proxy_fetch_failed", extra={"operation": "proxy", "public_id": descriptor.id, "error": str(exc)})
            raise RemoteStoreError(
                f"upstream fetch failed: {exc}", status_code=502, operation="proxy", public_id=descriptor.id
            ) from exc
    finally:
        if owns_client:
            await http.aclose()

    if not resp.is_success:
        metrics.record_proxy_upstream_failure()
        logger.warning(
            "media_proxy_upstream_status",
            extra={"operation": "proxy", "public_id": descriptor.id, "status_code": resp.status_code},
        )
        raise RemoteStoreError(
            f"upstream returned {resp.status_code}",
            status_code=resp.status_code,
            operation="proxy",
            public_id=descriptor.id,
        )

    metrics.record_proxy_served()
    return ProxiedMedia(
        content=resp.content,
        content_type=_content_type(resp, url, kind),
        url=url,
        cache_headers={"Cache-Control": settings.media_proxy_cache_control},
    )
