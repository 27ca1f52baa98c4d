from collections.abc import AsyncIterator

import httpx

from placeholder_media.core.config import settings
from placeholder_media.services.asset_store import CloudinaryClient
from placeholder_media.services.registry import MediaRegistry, get_registry


def registry_dependency() -> MediaRegistry:
    return get_registry()


async def asset_store_dependency() -> AsyncIterator[CloudinaryClient]:
    async with CloudinaryClient() as client:
        yield client


async def delivery_client_dependency() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.remote_timeout_seconds, follow_redirects=True) as client:
        yield client
