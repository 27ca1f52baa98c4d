from typing import Any

import anyio
import httpx
from fastapi import APIRouter, Body, Depends, Query, Response
from pydantic import ValidationError

from placeholder_media.core.dependencies import (
    asset_store_dependency,
    delivery_client_dependency,
    registry_dependency,
)
from placeholder_media.core.errors import ConfigSyncError, MediaValidationError, PlaceholderNotFoundError
from placeholder_media.schemas.media import (
    AssetDescriptor,
    CollectionPayload,
    CollectionResponse,
    FolderNode,
    OrganizeAssetsPayload,
    OrganizeAssetsResponse,
    OrganizersResponse,
    RegistryMutationResult,
    ResolvedAsset,
    ResponsiveResponse,
    ResponsiveSize,
    TransformPayload,
    TransformResponse,
)
from placeholder_media.services import folders as folder_service
from placeholder_media.services import organizer, proxy, transforms
from placeholder_media.services.asset_store import CloudinaryClient
from placeholder_media.services.registry import MediaRegistry

router = APIRouter(prefix="/media", tags=["media"])

_MUTATION_ERRORS = {"validation_error": MediaValidationError, "not_found": PlaceholderNotFoundError}
_RESPONSIVE_WIDTHS = (640, 750, 828, 1080, 1200, 1920, 2048)


def _raise_for_mutation(result: RegistryMutationResult) -> RegistryMutationResult:
    if not result.success:
        error_cls = _MUTATION_ERRORS.get(result.code or "", ConfigSyncError)
        raise error_cls(result.error or "registry update failed")
    return result


@router.get("/proxy")
async def proxy_media(
    id: str = Query(default="", description="Placeholder id or raw asset id"),
    registry: MediaRegistry = Depends(registry_dependency),
    client: httpx.AsyncClient = Depends(delivery_client_dependency),
) -> Response:
    served = await proxy.serve(registry, id, client=client)
    return Response(content=served.content, media_type=served.content_type, headers=served.cache_headers)


@router.post("/organize", response_model=OrganizeAssetsResponse)
async def organize_assets(
    payload: OrganizeAssetsPayload,
    store: CloudinaryClient = Depends(asset_store_dependency),
) -> OrganizeAssetsResponse:
    try:
        request = payload.to_request()
    except ValidationError as exc:
        raise MediaValidationError(exc.errors()[0]["msg"]) from exc
    results = await organizer.organize_assets(store, request)
    succeeded = sum(1 for result in results if result.success)
    return OrganizeAssetsResponse(
        success=succeeded > 0,
        message=f"Organized {succeeded} of {len(results)} assets",
        results=results,
    )


@router.put("/organize", response_model=CollectionResponse)
async def create_collection(
    payload: CollectionPayload,
    store: CloudinaryClient = Depends(asset_store_dependency),
) -> CollectionResponse:
    result = await organizer.create_collection(store, payload.name, source_tag=payload.tag, source_folder=payload.folder)
    verb = "Created" if result.created else "Updated"
    return CollectionResponse(
        success=True,
        message=f"{verb} collection {result.name!r} with {len(result.asset_ids)} assets",
        result=result,
    )


@router.get("/folders", response_model=list[FolderNode])
async def list_folders(
    response: Response,
    store: CloudinaryClient = Depends(asset_store_dependency),
) -> list[FolderNode]:
    tree = await folder_service.fetch_tree(store)
    response.headers["X-Total-Folders"] = str(folder_service.count_folders(tree))
    return tree


@router.get("/organizers", response_model=OrganizersResponse)
async def list_organizers(store: CloudinaryClient = Depends(asset_store_dependency)) -> OrganizersResponse:
    roots = await store.list_root_folders()
    tags = await store.list_tags("image")
    return OrganizersResponse(folders=[str(entry.get("path") or entry.get("name")) for entry in roots], tags=tags)


@router.post("/transform", response_model=TransformResponse)
async def transform(
    payload: TransformPayload,
    registry: MediaRegistry = Depends(registry_dependency),
) -> TransformResponse:
    descriptor = registry.resolve(payload.public_id)
    url, kind = transforms.build_url(descriptor, payload.transformations)
    return TransformResponse(
        url=url,
        public_id=payload.public_id,
        transformations=payload.transformations,
        media_type=kind,
    )


@router.get("/responsive/{public_id:path}", response_model=ResponsiveResponse)
async def responsive(
    public_id: str,
    width: int = Query(default=1920, gt=0),
    height: int | None = Query(default=None, gt=0),
    quality: int = Query(default=80, ge=1, le=100),
    format: str = Query(default="auto"),
    registry: MediaRegistry = Depends(registry_dependency),
) -> ResponsiveResponse:
    descriptor = registry.resolve(public_id.replace("|", "/"))
    if descriptor.kind == "video":
        url = transforms.build_video_url(
            descriptor, {"width": width, "quality": quality, "format": "mp4" if format == "auto" else format}
        )
        return ResponsiveResponse(url=url, public_id=descriptor.id, is_video=True)
    options: dict[str, Any] = {"quality": quality, "format": format}
    url = transforms.build_image_url(descriptor, {**options, "width": width, "height": height})
    return ResponsiveResponse(
        url=url,
        src_set=transforms.build_image_srcset(descriptor, options),
        public_id=descriptor.id,
        is_video=False,
        sizes=[
            ResponsiveSize(width=size, url=transforms.build_image_url(descriptor, {**options, "width": size}))
            for size in _RESPONSIVE_WIDTHS
        ],
    )


@router.get("/assets", response_model=dict[str, AssetDescriptor])
async def list_assets(registry: MediaRegistry = Depends(registry_dependency)) -> dict[str, AssetDescriptor]:
    return registry.all()


@router.get("/assets/{placeholder_id}", response_model=ResolvedAsset)
async def resolve_asset(
    placeholder_id: str,
    registry: MediaRegistry = Depends(registry_dependency),
) -> ResolvedAsset:
    descriptor = registry.resolve(placeholder_id)
    url, _ = transforms.build_url(descriptor)
    return ResolvedAsset(placeholder_id=placeholder_id, registered=not descriptor.synthesized, asset=descriptor, url=url)


@router.put("/assets/{placeholder_id}", response_model=RegistryMutationResult)
async def update_asset(
    placeholder_id: str,
    payload: dict[str, Any] = Body(...),
    registry: MediaRegistry = Depends(registry_dependency),
) -> RegistryMutationResult:
    result = await anyio.to_thread.run_sync(registry.update, placeholder_id, payload)
    return _raise_for_mutation(result)


@router.delete("/assets/{placeholder_id}", response_model=RegistryMutationResult)
async def delete_asset(
    placeholder_id: str,
    registry: MediaRegistry = Depends(registry_dependency),
) -> RegistryMutationResult:
    result = await anyio.to_thread.run_sync(registry.delete, placeholder_id)
    return _raise_for_mutation(result)
