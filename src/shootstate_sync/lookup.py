"""Resolve the ShootState and Shoot belonging to a seed namespace."""

import base64
import json
import logging
from typing import Any

from shootstate_sync.errors import NotFoundError
from shootstate_sync.state import Shoot

logger = logging.getLogger(__name__)


def decode_cluster_shoot(cluster: dict[str, Any]) -> dict[str, Any] | None:
    """Extract the embedded shoot from a Cluster resource.

    The shoot is usually inlined as an object; a base64 or JSON string form
    is accepted as well.
    """
    shoot = (cluster.get("spec") or {}).get("shoot")
    if not shoot:
        return None
    if isinstance(shoot, dict):
        return shoot
    if isinstance(shoot, (bytes, str)):
        raw = shoot.encode() if isinstance(shoot, str) else shoot
        try:
            return json.loads(raw)
        except ValueError:
            return json.loads(base64.b64decode(raw))
    return None


async def get_shoot_state_for_cluster(
    garden: Any,
    seed: Any,
    namespace: str,
) -> tuple[dict[str, Any], Shoot]:
    """Fetch the ShootState and Shoot for the shoot owning ``namespace``.

    Raises NotFoundError when the Cluster resource, the shoot inside it or
    the ShootState does not exist.
    """
    cluster = await seed.get("Cluster", None, namespace)

    shoot_obj = decode_cluster_shoot(cluster)
    if not shoot_obj:
        raise NotFoundError(f"cluster {namespace} does not reference a shoot")
    shoot = Shoot.from_dict(shoot_obj)

    shoot_state = await garden.get("ShootState", shoot.namespace, shoot.name)
    logger.debug("Resolved ShootState %s/%s for namespace %s", shoot.namespace, shoot.name, namespace)
    return shoot_state, shoot
