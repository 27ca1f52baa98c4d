from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from placeholder_media.core import metrics
from placeholder_media.core.errors import MediaValidationError, RemoteStoreError
from placeholder_media.schemas.media import CollectionDescriptor, MediaKindLiteral, OrganizeRequest, OrganizeResult
from placeholder_media.services.transforms import classify_media_type

logger = logging.getLogger(__name__)


class OrganizerStore(Protocol):
    async def get_resource(self, public_id: str, resource_type: MediaKindLiteral = "image") -> dict[str, Any]: ...

    async def update_resource(
        self,
        public_id: str,
        *,
        tags: Iterable[str] | None = None,
        context: Mapping[str, str] | None = None,
        resource_type: MediaKindLiteral = "image",
    ) -> dict[str, Any]: ...

    async def rename_resource(
        self, from_public_id: str, to_public_id: str, *, resource_type: MediaKindLiteral = "image"
    ) -> dict[str, Any]: ...

    async def list_root_folders(self) -> list[dict[str, Any]]: ...

    async def create_folder(self, path: str) -> dict[str, Any]: ...

    async def list_resources_by_tag(self, tag: str, resource_type: MediaKindLiteral = "image") -> list[str]: ...

    async def list_resources_by_prefix(self, prefix: str, resource_type: MediaKindLiteral = "image") -> list[str]: ...


def collection_tag(name: str) -> str:
    slug = re.sub(r"[^a-z0-9_-]+", "-", name.strip().lower()).strip("-_")
    return f"collection-{slug[:64]}"


def _existing_context(resource: dict[str, Any]) -> dict[str, str]:
    context = resource.get("context") or {}
    custom = context.get("custom", context) if isinstance(context, dict) else {}
    return {str(key): str(value) for key, value in custom.items()} if isinstance(custom, dict) else {}


async def _organize_one(store: OrganizerStore, asset_id: str, request: OrganizeRequest) -> OrganizeResult:
    resource_type = classify_media_type(asset_id)
    public_id = asset_id
    try:
        if request.destination_folder:
            target = f"{request.destination_folder}/{asset_id.rsplit('/', 1)[-1]}"
            if target != asset_id:
                moved = await store.rename_resource(asset_id, target, resource_type=resource_type)
                public_id = str(moved.get("public_id") or target)

        tags: list[str] | None = None
        context: dict[str, str] | None = None
        needs_current = (request.tags and request.add_tags_additively) or request.context
        current = await store.get_resource(public_id, resource_type) if needs_current else {}
        if request.tags:
            if request.add_tags_additively:
                existing = [str(tag) for tag in current.get("tags") or []]
                tags = existing + [tag for tag in request.tags if tag not in existing]
            else:
                tags = list(request.tags)
        if request.context:
            context = {**_existing_context(current), **request.context}
        if tags is not None or context is not None:
            await store.update_resource(public_id, tags=tags, context=context, resource_type=resource_type)
    except RemoteStoreError as exc:
        metrics.record_organize_failure()
        logger.warning(
            "organize_asset_failed",
            extra={"operation": exc.operation or "organize", "public_id": public_id, "status_code": exc.status_code},
        )
        # After a completed move the asset only exists under public_id.
        return OrganizeResult(
            asset_id=asset_id,
            success=False,
            public_id=public_id,
            error=exc.message,
            status_code=exc.status_code,
        )
    return OrganizeResult(asset_id=asset_id, success=True, public_id=public_id)


async def organize_assets(store: OrganizerStore, request: OrganizeRequest) -> list[OrganizeResult]:
    """Apply folder/tag/context changes to each asset independently.

    Returns one result per asset. A failed asset does not stop the rest, so a batch
    that partly succeeds is a normal outcome; callers retry only the failures. A
    failed result's ``public_id`` is where the asset lives now, which is the
    destination id when the move went through before a later call failed.
    """
    if not request.asset_ids:
        raise MediaValidationError("at least one asset id is required")
    return [await _organize_one(store, asset_id, request) for asset_id in request.asset_ids]


async def create_collection(
    store: OrganizerStore,
    name: str,
    *,
    source_tag: str | None = None,
    source_folder: str | None = None,
) -> CollectionDescriptor:
    """Create or refresh a named collection from the assets of a tag or folder.

    The collection is a root folder plus a membership tag on each source asset. When
    both sources are given the tag wins. Re-running with the same name reuses the
    existing folder and re-applies membership, so repeated runs are idempotent.
    """
    clean_name = (name or "").strip().strip("/")
    if not clean_name:
        raise MediaValidationError("collection name is required")
    tag = (source_tag or "").strip() or None
    folder = None if tag else ((source_folder or "").strip().strip("/") or None)

    roots = await store.list_root_folders()
    exists = any(str(entry.get("name") or "").strip("/") == clean_name for entry in roots)
    if not exists:
        await store.create_folder(clean_name)
        logger.info("collection_created", extra={"public_id": clean_name})

    if tag:
        members = await store.list_resources_by_tag(tag)
    elif folder:
        members = await store.list_resources_by_prefix(f"{folder}/")
    else:
        members = []

    failed: list[OrganizeResult] = []
    if members:
        request = OrganizeRequest(asset_ids=members, tags=[collection_tag(clean_name)], add_tags_additively=True)
        results = await organize_assets(store, request)
        failed = [result for result in results if not result.success]

    return CollectionDescriptor(
        name=clean_name,
        path=clean_name,
        created=not exists,
        source_tag=tag,
        source_folder=folder,
        asset_ids=members,
        failed=failed,
    )
