from __future__ import annotations

import logging
from typing import Any, Final, Protocol

from placeholder_media.core import metrics
from placeholder_media.core.errors import RemoteStoreError
from placeholder_media.schemas.media import FolderNode

logger = logging.getLogger(__name__)

# Root folders named after a placement area are listed first, in this order.
STANDARD_AREAS: Final[tuple[str, ...]] = ("hero", "gallery", "team", "article", "service", "logo", "video-thumbnail")


class FolderSource(Protocol):
    async def list_root_folders(self) -> list[dict[str, Any]]: ...

    async def list_subfolders(self, path: str) -> list[dict[str, Any]]: ...


def _root_sort_key(node: FolderNode) -> tuple[int, int, str]:
    if node.name in STANDARD_AREAS:
        return 0, STANDARD_AREAS.index(node.name), ""
    return 1, 0, node.name.lower()


def _entry_to_node(entry: dict[str, Any], parent_path: str) -> FolderNode:
    name = str(entry.get("name") or "").strip("/")
    path = str(entry.get("path") or "").strip("/")
    if not path:
        path = f"{parent_path}/{name}" if parent_path else name
    return FolderNode(name=name or path.rsplit("/", 1)[-1], path=path)


async def _attach_subfolders(source: FolderSource, node: FolderNode) -> FolderNode:
    try:
        entries = await source.list_subfolders(node.path)
    except RemoteStoreError as exc:
        # One unreadable folder must not sink the whole tree.
        logger.warning(
            "folder_subtree_fetch_failed",
            extra={"operation": "list_subfolders", "public_id": node.path, "status_code": exc.status_code},
        )
        metrics.record_folder_fetch_failure()
        node.subfolders = []
        node.error = exc.message
        return node
    children = [_entry_to_node(entry, node.path) for entry in entries]
    for child in children:
        await _attach_subfolders(source, child)
    node.subfolders = sorted(children, key=lambda child: child.name.lower())
    return node


async def fetch_tree(source: FolderSource) -> list[FolderNode]:
    """Walk the remote folder hierarchy depth-first, one request per folder.

    A failure listing the root propagates. A failure listing any deeper folder is
    logged, recorded on that node's ``error`` and leaves its ``subfolders`` empty.
    """
    roots = [_entry_to_node(entry, "") for entry in await source.list_root_folders()]
    for root in roots:
        await _attach_subfolders(source, root)
    return sorted(roots, key=_root_sort_key)


def count_folders(nodes: list[FolderNode]) -> int:
    return sum(1 + count_folders(node.subfolders) for node in nodes)
