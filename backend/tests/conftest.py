from __future__ import annotations

from collections.abc import Generator, Iterable, Mapping
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from placeholder_media.core import metrics
from placeholder_media.core.dependencies import (
    asset_store_dependency,
    delivery_client_dependency,
    registry_dependency,
)
from placeholder_media.core.errors import RemoteStoreError
from placeholder_media.main import app
from placeholder_media.services.config_sync import JsonRegistryStore
from placeholder_media.services.registry import MediaRegistry


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    # Counters are process-global and would leak across tests.
    metrics.reset()
    yield
    metrics.reset()


class FakeAssetStore:
    """In-memory stand-in for the remote store that records every call."""

    def __init__(
        self,
        *,
        folders: Mapping[str, Iterable[str]] | None = None,
        resources: Mapping[str, Mapping[str, Any]] | None = None,
        failing_paths: Iterable[str] = (),
        failing_ids: Iterable[str] = (),
    ) -> None:
        self.folders: dict[str, list[str]] = {key: list(value) for key, value in (folders or {}).items()}
        self.resources: dict[str, dict[str, Any]] = {
            key: {"tags": list(value.get("tags", [])), "context": dict(value.get("context", {}))}
            for key, value in (resources or {}).items()
        }
        self.failing_paths = set(failing_paths)
        self.failing_ids = set(failing_ids)
        self.calls: list[tuple[str, str]] = []

    def _resource(self, public_id: str, operation: str) -> dict[str, Any]:
        if public_id in self.failing_ids or public_id not in self.resources:
            raise RemoteStoreError(
                f"{operation} failed: Resource not found - {public_id}",
                status_code=404,
                operation=operation,
                public_id=public_id,
            )
        return self.resources[public_id]

    async def list_root_folders(self) -> list[dict[str, Any]]:
        self.calls.append(("list_root_folders", ""))
        if "" in self.failing_paths:
            raise RemoteStoreError("list_root_folders failed: HTTP 500", status_code=500, operation="list_root_folders")
        return [{"name": name, "path": name} for name in self.folders.get("", [])]

    async def list_subfolders(self, path: str) -> list[dict[str, Any]]:
        self.calls.append(("list_subfolders", path))
        if path in self.failing_paths:
            raise RemoteStoreError(
                "list_subfolders failed: HTTP 500", status_code=500, operation="list_subfolders", public_id=path
            )
        return [{"name": name, "path": f"{path}/{name}"} for name in self.folders.get(path, [])]

    async def create_folder(self, path: str) -> dict[str, Any]:
        self.calls.append(("create_folder", path))
        parent, _, name = path.rpartition("/")
        self.folders.setdefault(parent, []).append(name)
        return {"success": True, "path": path, "name": name}

    async def list_tags(self, resource_type: str = "image") -> list[str]:
        self.calls.append(("list_tags", resource_type))
        return sorted({tag for resource in self.resources.values() for tag in resource["tags"]})

    async def get_resource(self, public_id: str, resource_type: str = "image") -> dict[str, Any]:
        self.calls.append(("get_resource", public_id))
        resource = self._resource(public_id, "get_resource")
        return {"public_id": public_id, "tags": list(resource["tags"]), "context": {"custom": dict(resource["context"])}}

    async def update_resource(
        self,
        public_id: str,
        *,
        tags: Iterable[str] | None = None,
        context: Mapping[str, str] | None = None,
        resource_type: str = "image",
    ) -> dict[str, Any]:
        self.calls.append(("update_resource", public_id))
        resource = self._resource(public_id, "update_resource")
        if tags is not None:
            resource["tags"] = list(tags)
        if context is not None:
            resource["context"] = dict(context)
        return {"public_id": public_id}

    async def rename_resource(self, from_public_id: str, to_public_id: str, *, resource_type: str = "image") -> dict[str, Any]:
        self.calls.append(("rename_resource", from_public_id))
        resource = self._resource(from_public_id, "rename_resource")
        del self.resources[from_public_id]
        self.resources[to_public_id] = resource
        return {"public_id": to_public_id}

    async def list_resources_by_tag(self, tag: str, resource_type: str = "image") -> list[str]:
        self.calls.append(("list_resources_by_tag", tag))
        return [public_id for public_id, resource in self.resources.items() if tag in resource["tags"]]

    async def list_resources_by_prefix(self, prefix: str, resource_type: str = "image") -> list[str]:
        self.calls.append(("list_resources_by_prefix", prefix))
        return [public_id for public_id in self.resources if public_id.startswith(prefix)]


class DeliveryStub:
    """Canned replies for the delivery host, keyed by full URL."""

    def __init__(self) -> None:
        self.responses: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.get(str(request.url))
        return response if response is not None else httpx.Response(404, request=request)


@pytest.fixture
def fake_store() -> FakeAssetStore:
    return FakeAssetStore()


@pytest.fixture
def registry(tmp_path) -> MediaRegistry:
    return MediaRegistry(JsonRegistryStore(tmp_path / "registry.json"))


@pytest.fixture
def delivery() -> DeliveryStub:
    return DeliveryStub()


@pytest.fixture
def client(registry: MediaRegistry, fake_store: FakeAssetStore, delivery: DeliveryStub) -> Generator[TestClient, None, None]:
    async def override_delivery_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(delivery.handler)) as http:
            yield http

    app.dependency_overrides[registry_dependency] = lambda: registry
    app.dependency_overrides[asset_store_dependency] = lambda: fake_store
    app.dependency_overrides[delivery_client_dependency] = override_delivery_client
    test_client = TestClient(app, raise_server_exceptions=False)
    yield test_client
    test_client.close()
    app.dependency_overrides.clear()


@pytest.fixture
def store_factory() -> type[FakeAssetStore]:
    return FakeAssetStore
