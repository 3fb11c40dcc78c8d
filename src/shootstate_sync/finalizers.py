"""Finalizer helpers.

Finalizers are changed with a JSON merge patch that carries the object's
``resourceVersion``, so a concurrent change to the finalizer list makes the
API server reject the patch with a conflict instead of losing a token.
"""

import copy
import logging
from typing import Any

from shootstate_sync.client import MERGE_PATCH
from shootstate_sync.patch import create_merge_patch

logger = logging.getLogger(__name__)


def has_finalizer(obj: dict[str, Any], finalizer: str) -> bool:
    """Check whether an object carries the finalizer."""
    return finalizer in (obj.get("metadata", {}).get("finalizers") or [])


async def add_finalizer(client: Any, kind: str, obj: dict[str, Any], finalizer: str) -> dict[str, Any]:
    """Add the finalizer to the object if missing. Returns the updated object."""
    if has_finalizer(obj, finalizer):
        return obj

    modified = copy.deepcopy(obj)
    finalizers = modified.setdefault("metadata", {}).get("finalizers") or []
    modified["metadata"]["finalizers"] = finalizers + [finalizer]
    return await _patch_with_optimistic_lock(client, kind, obj, modified)


async def remove_finalizer(client: Any, kind: str, obj: dict[str, Any], finalizer: str) -> dict[str, Any]:
    """Remove the finalizer from the object if present. Returns the updated object."""
    if not has_finalizer(obj, finalizer):
        return obj

    modified = copy.deepcopy(obj)
    modified["metadata"]["finalizers"] = [
        f for f in modified["metadata"]["finalizers"] if f != finalizer
    ]
    return await _patch_with_optimistic_lock(client, kind, obj, modified)


async def _patch_with_optimistic_lock(
    client: Any,
    kind: str,
    original: dict[str, Any],
    modified: dict[str, Any],
) -> dict[str, Any]:
    meta = original.get("metadata", {})
    patch = create_merge_patch(original, modified)
    resource_version = meta.get("resourceVersion")
    if resource_version:
        patch.setdefault("metadata", {})["resourceVersion"] = resource_version

    logger.debug(
        "Patching finalizers of %s %s/%s",
        kind, meta.get("namespace", ""), meta.get("name"),
    )
    updated = await client.patch(kind, meta.get("namespace"), meta["name"], patch, patch_type=MERGE_PATCH)
    return updated or modified
