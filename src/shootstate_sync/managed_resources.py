"""Seed cleanup helpers for ManagedResources and legacy PriorityClasses."""

import asyncio
import logging
import time
from typing import Any

from shootstate_sync.client import MERGE_PATCH
from shootstate_sync.config import LABEL_KEY_ORIGIN, LABEL_VALUE_GARDENER, LEGACY_PRIORITY_CLASSES
from shootstate_sync.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

GARDENER_ORIGIN = {LABEL_KEY_ORIGIN: LABEL_VALUE_GARDENER}


async def delete_managed_resources(seed: Any, namespace: str) -> None:
    """Delete all ManagedResources created by gardener in the namespace."""
    logger.info("Deleting managed resources in %s", namespace)
    await seed.delete_all_of("ManagedResource", namespace, labels=GARDENER_ORIGIN)


async def wait_until_managed_resources_deleted(
    seed: Any,
    namespace: str,
    interval: float = 5.0,
    timeout: float = 600.0,
) -> None:
    """Poll until no gardener ManagedResource is left in the namespace."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = await seed.list("ManagedResource", namespace, labels=GARDENER_ORIGIN)
        if not remaining:
            return

        names = [item.get("metadata", {}).get("name") for item in remaining]
        if time.monotonic() >= deadline:
            raise StoreError(
                f"managed resources in {namespace} still present after {timeout}s: {', '.join(names)}"
            )

        logger.debug("Waiting for managed resources to be deleted", extra={"remaining": names})
        await asyncio.sleep(interval)


async def keep_objects_for_managed_resources(seed: Any, namespace: str) -> int:
    """Mark every gardener ManagedResource in the namespace to keep its objects.

    Returns the number of resources patched.
    """
    try:
        managed_resources = await seed.list("ManagedResource", namespace, labels=GARDENER_ORIGIN)
    except StoreError as e:
        raise StoreError(f"failed to list all managed resources: {e}", status_code=e.status_code) from e

    for resource in managed_resources:
        meta = resource.get("metadata", {})
        await seed.patch(
            "ManagedResource",
            meta.get("namespace", namespace),
            meta["name"],
            {"spec": {"keepObjects": True}},
            patch_type=MERGE_PATCH,
        )

    return len(managed_resources)


async def cleanup_legacy_priority_classes(seed: Any) -> list[str]:
    """Delete PriorityClasses that are no longer deployed by gardener.

    Missing classes are skipped. Returns the names actually deleted.
    """
    deleted = []
    for name in LEGACY_PRIORITY_CLASSES:
        try:
            await seed.delete("PriorityClass", None, name)
        except NotFoundError:
            continue
        logger.info("Deleted legacy priority class %s", name)
        deleted.append(name)
    return deleted
