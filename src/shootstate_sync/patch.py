"""Patch computation and the ShootState patch committer.

Two patch flavours are supported:

- JSON merge patches (RFC 7386), where lists are replaced wholesale.
- Strategic merge patches, where lists with a known merge key are merged
  element by element. Entries are matched by the merge key, removed entries
  are sent as ``$patch: delete`` directives and the desired order travels in
  a ``$setElementOrder/<field>`` directive. Entries the patch does not name
  are left alone, so concurrent writers of other entries are not clobbered.

Neither flavour carries ``metadata.resourceVersion`` unless the caller puts
it there.
"""

import copy
import logging
from typing import Any

from shootstate_sync.client import STRATEGIC_MERGE_PATCH
from shootstate_sync.errors import StoreError

logger = logging.getLogger(__name__)

# Dotted field path -> merge key
SHOOT_STATE_MERGE_KEYS: dict[str, str] = {
    "spec.gardener": "name",
    "spec.extensions": "name",
    "spec.resources": "name",
}

DIRECTIVE_PATCH = "$patch"
DIRECTIVE_ORDER_PREFIX = "$setElementOrder/"


def create_merge_patch(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    """Compute an RFC 7386 merge patch turning ``original`` into ``modified``."""
    patch: dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None
    for key, value in modified.items():
        old = original.get(key)
        if key in original and old == value:
            continue
        if isinstance(old, dict) and isinstance(value, dict):
            nested = create_merge_patch(old, value)
            if nested:
                patch[key] = nested
        else:
            patch[key] = copy.deepcopy(value)
    return patch


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 merge patch and return the result."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result


def create_strategic_merge_patch(
    original: dict[str, Any],
    modified: dict[str, Any],
    merge_keys: dict[str, str] | None = None,
    _path: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Compute a strategic merge patch turning ``original`` into ``modified``."""
    if merge_keys is None:
        merge_keys = SHOOT_STATE_MERGE_KEYS

    patch: dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None

    for key, value in modified.items():
        old = original.get(key)
        if key in original and old == value:
            continue

        field_path = _path + (key,)
        merge_key = merge_keys.get(".".join(field_path))

        if isinstance(old, dict) and isinstance(value, dict):
            nested = create_strategic_merge_patch(old, value, merge_keys, field_path)
            if nested:
                patch[key] = nested
        elif merge_key and isinstance(old, list) and isinstance(value, list):
            items = _diff_keyed_list(old, value, merge_key, merge_keys, field_path)
            if items:
                patch[key] = items
            patch[DIRECTIVE_ORDER_PREFIX + key] = [{merge_key: item[merge_key]} for item in value]
        else:
            patch[key] = copy.deepcopy(value)

    return patch


def _diff_keyed_list(
    old: list[dict[str, Any]],
    new: list[dict[str, Any]],
    merge_key: str,
    merge_keys: dict[str, str],
    path: tuple[str, ...],
) -> list[dict[str, Any]]:
    old_by_key = {item[merge_key]: item for item in old}
    new_keys = {item[merge_key] for item in new}

    items: list[dict[str, Any]] = []
    for item in new:
        key = item[merge_key]
        if key not in old_by_key:
            items.append(copy.deepcopy(item))
        elif old_by_key[key] != item:
            nested = create_strategic_merge_patch(old_by_key[key], item, merge_keys, path)
            items.append({merge_key: key, **nested})

    for item in old:
        if item[merge_key] not in new_keys:
            items.append({DIRECTIVE_PATCH: "delete", merge_key: item[merge_key]})

    return items


def apply_strategic_merge_patch(
    target: dict[str, Any],
    patch: dict[str, Any],
    merge_keys: dict[str, str] | None = None,
    _path: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Apply a strategic merge patch produced by ``create_strategic_merge_patch``."""
    if merge_keys is None:
        merge_keys = SHOOT_STATE_MERGE_KEYS

    result = copy.deepcopy(target)
    orders: dict[str, list[dict[str, Any]]] = {}

    for key, value in patch.items():
        if key.startswith(DIRECTIVE_ORDER_PREFIX):
            orders[key[len(DIRECTIVE_ORDER_PREFIX):]] = value
            continue
        if key.startswith("$"):
            continue

        field_path = _path + (key,)
        merge_key = merge_keys.get(".".join(field_path))

        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = apply_strategic_merge_patch(result[key], value, merge_keys, field_path)
        elif merge_key and isinstance(value, list):
            result[key] = _apply_keyed_list(
                result.get(key) or [], value, merge_key, merge_keys, field_path
            )
        else:
            result[key] = _strip_directives(value)

    for key, order in orders.items():
        merge_key = merge_keys.get(".".join(_path + (key,)))
        if merge_key and isinstance(result.get(key), list):
            result[key] = _reorder(result[key], order, merge_key)

    return result


def _apply_keyed_list(
    current: list[dict[str, Any]],
    items: list[dict[str, Any]],
    merge_key: str,
    merge_keys: dict[str, str],
    path: tuple[str, ...],
) -> list[dict[str, Any]]:
    result = copy.deepcopy(current)
    for item in items:
        key = item.get(merge_key)
        if item.get(DIRECTIVE_PATCH) == "delete":
            result = [entry for entry in result if entry.get(merge_key) != key]
            continue
        for index, entry in enumerate(result):
            if entry.get(merge_key) == key:
                result[index] = apply_strategic_merge_patch(entry, item, merge_keys, path)
                break
        else:
            result.append(_strip_directives(item))
    return result


def _reorder(
    items: list[dict[str, Any]],
    order: list[dict[str, Any]],
    merge_key: str,
) -> list[dict[str, Any]]:
    # Entries unknown to the patch keep their relative order after the ordered ones.
    position = {entry.get(merge_key): index for index, entry in enumerate(order)}
    ordered = sorted(
        (item for item in items if item.get(merge_key) in position),
        key=lambda item: position[item.get(merge_key)],
    )
    rest = [item for item in items if item.get(merge_key) not in position]
    return ordered + rest


def _strip_directives(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: _strip_directives(item)
            for key, item in value.items()
            if not key.startswith("$") and item is not None
        }
    if isinstance(value, list):
        return [_strip_directives(item) for item in value]
    return copy.deepcopy(value)


async def commit_shoot_state(
    client: Any,
    baseline: dict[str, Any],
    modified: dict[str, Any],
) -> bool:
    """Send the difference between ``baseline`` and ``modified`` as a strategic merge patch.

    Returns False without calling the API when there is nothing to change.
    Any failure, including the record having vanished, is raised.
    """
    meta = baseline.get("metadata", {})
    namespace = meta.get("namespace")
    name = meta.get("name")

    patch = create_strategic_merge_patch(baseline, modified)
    if not patch:
        logger.debug("ShootState %s/%s already up to date", namespace, name)
        return False

    try:
        await client.patch("ShootState", namespace, name, patch, patch_type=STRATEGIC_MERGE_PATCH)
    except StoreError as e:
        raise StoreError(
            f"failed to patch ShootState {namespace}/{name}: {e}",
            status_code=e.status_code,
        ) from e

    return True
