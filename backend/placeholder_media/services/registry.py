from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from placeholder_media.core import metrics
from placeholder_media.core.errors import ConfigSyncError
from placeholder_media.schemas.media import AssetDescriptor, DefaultOptions, MediaAreaLiteral, RegistryMutationResult
from placeholder_media.services.config_sync import RegistryStore, build_store
from placeholder_media.services.transforms import classify_media_type

logger = logging.getLogger(__name__)


def _validate_descriptor(descriptor: AssetDescriptor | Mapping[str, Any]) -> AssetDescriptor:
    if isinstance(descriptor, AssetDescriptor):
        # Round-trip so that a model built with model_construct() is still checked.
        return AssetDescriptor.model_validate(descriptor.model_dump(by_alias=True))
    return AssetDescriptor.model_validate(dict(descriptor))


class MediaRegistry:
    """Placeholder id -> asset descriptor lookup backed by a persisted file.

    Reads go through an immutable snapshot. A mutation builds a new mapping, persists
    it and only then swaps the snapshot reference, so readers never see a half-applied
    change and a failed write leaves the previous snapshot in place.

    There is no locking: callers issue one mutation at a time, and two unsynchronised
    mutations resolve as last write wins (the earlier one is lost).
    """

    def __init__(self, store: RegistryStore, assets: Mapping[str, AssetDescriptor] | None = None) -> None:
        self._store = store
        self._snapshot: Mapping[str, AssetDescriptor] = MappingProxyType(dict(assets or {}))

    @classmethod
    def load(cls, store: RegistryStore) -> "MediaRegistry":
        assets = store.load()
        logger.info("media_registry_loaded", extra={"entries": len(assets)})
        return cls(store, assets)

    def snapshot(self) -> Mapping[str, AssetDescriptor]:
        return self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, placeholder_id: object) -> bool:
        return placeholder_id in self._snapshot

    def get(self, placeholder_id: str) -> AssetDescriptor | None:
        return self._snapshot.get(placeholder_id)

    def all(self) -> dict[str, AssetDescriptor]:
        return dict(self._snapshot)

    def by_area(self, area: MediaAreaLiteral) -> dict[str, AssetDescriptor]:
        return {key: value for key, value in self._snapshot.items() if value.area == area}

    def resolve(self, id_or_placeholder: str) -> AssetDescriptor:
        """Registered descriptor for a placeholder, else a stand-in for a raw remote id.

        The stand-in has ``synthesized=True``, no area and a kind guessed from the id's
        extension; callers that must reject unknown ids check that flag.
        """
        key = str(id_or_placeholder or "").strip()
        found = self._snapshot.get(key)
        if found is not None:
            return found
        public_id = key if key.startswith(("http://", "https://")) else key.lstrip("/")
        return AssetDescriptor.model_construct(
            id=public_id,
            kind=classify_media_type(public_id),
            default_options=DefaultOptions(),
            synthesized=True,
        )

    def _commit(self, candidate: dict[str, AssetDescriptor], *, operation: str, placeholder_id: str) -> RegistryMutationResult:
        try:
            self._store.persist(candidate)
        except ConfigSyncError as exc:
            logger.error(
                "media_registry_persist_failed",
                extra={"operation": operation, "placeholder_id": placeholder_id, "error": exc.message},
            )
            metrics.record_registry_mutation(False)
            return RegistryMutationResult(success=False, error=exc.message, code=exc.code)
        except OSError as exc:
            logger.error(
                "media_registry_write_failed",
                extra={"operation": operation, "placeholder_id": placeholder_id, "error": str(exc)},
            )
            metrics.record_registry_mutation(False)
            return RegistryMutationResult(success=False, error=str(exc), code="persistence_error")
        self._snapshot = MappingProxyType(candidate)
        metrics.record_registry_mutation(True)
        logger.info("media_registry_updated", extra={"operation": operation, "placeholder_id": placeholder_id})
        return RegistryMutationResult(success=True)

    def update(self, placeholder_id: str, descriptor: AssetDescriptor | Mapping[str, Any]) -> RegistryMutationResult:
        key = str(placeholder_id or "").strip()
        if not key:
            return RegistryMutationResult(success=False, error="placeholder id is required", code="validation_error")
        try:
            validated = _validate_descriptor(descriptor)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or "descriptor"
            return RegistryMutationResult(success=False, error=f"{location}: {first['msg']}", code="validation_error")
        candidate = dict(self._snapshot)
        candidate[key] = validated
        return self._commit(candidate, operation="update", placeholder_id=key)

    def delete(self, placeholder_id: str) -> RegistryMutationResult:
        key = str(placeholder_id or "").strip()
        if key not in self._snapshot:
            return RegistryMutationResult(success=False, error=f"placeholder {key!r} is not registered", code="not_found")
        candidate = {name: value for name, value in self._snapshot.items() if name != key}
        return self._commit(candidate, operation="delete", placeholder_id=key)


@lru_cache
def get_registry() -> MediaRegistry:
    """Process-wide registry, loaded once from the configured store."""
    return MediaRegistry.load(build_store())


def reset_registry() -> None:
    get_registry.cache_clear()
