import httpx
import pytest

from placeholder_media.core import metrics
from placeholder_media.core.errors import MediaValidationError, RemoteStoreError
from placeholder_media.services import proxy
from placeholder_media.services.registry import MediaRegistry

DELIVERY = "https://res.cloudinary.com/demo"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_placeholder_is_resolved_and_served_with_immutable_caching(registry: MediaRegistry) -> None:
    registry.update("hero.main", {"id": "hero/main-img", "defaultOptions": {"width": 1200}})
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"}, request=request)

    async with _client(handler) as client:
        served = await proxy.serve(registry, "hero.main", client=client)

    assert seen == [f"{DELIVERY}/image/upload/q_auto,f_auto/hero/main-img"]
    assert served.content == b"\x89PNG"
    assert served.content_type == "image/png"
    assert served.cache_headers == {"Cache-Control": "public, max-age=31536000, immutable"}
    assert metrics.snapshot()["proxy_served"] == 1


@pytest.mark.anyio
async def test_raw_video_id_uses_video_delivery(registry: MediaRegistry) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=b"video", request=request)

    async with _client(handler) as client:
        served = await proxy.serve(registry, "videos/intro.mp4", client=client)

    assert seen == [f"{DELIVERY}/video/upload/f_mp4,q_auto/videos/intro.mp4"]
    assert served.content_type == "video/mp4"


@pytest.mark.anyio
async def test_upstream_status_is_propagated(registry: MediaRegistry) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, request=request)

    async with _client(handler) as client:
        with pytest.raises(RemoteStoreError) as excinfo:
            await proxy.serve(registry, "gallery/missing", client=client)

    assert excinfo.value.status_code == 404
    assert excinfo.value.public_id == "gallery/missing"
    assert metrics.snapshot()["proxy_upstream_failures"] == 1


@pytest.mark.anyio
async def test_network_failure_is_bad_gateway(registry: MediaRegistry) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as client:
        with pytest.raises(RemoteStoreError) as excinfo:
            await proxy.serve(registry, "gallery/a", client=client)

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
@pytest.mark.parametrize("asset_id", ["", "   "])
async def test_missing_id_is_rejected(registry: MediaRegistry, asset_id: str) -> None:
    with pytest.raises(MediaValidationError):
        await proxy.serve(registry, asset_id)


@pytest.mark.anyio
async def test_foreign_hosts_are_not_proxied(registry: MediaRegistry) -> None:
    registry.update("partner.logo", {"id": "https://partner.example.com/logo.png"})
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, request=request)

    async with _client(handler) as client:
        with pytest.raises(MediaValidationError):
            await proxy.serve(registry, "partner.logo", client=client)

    assert calls == []
