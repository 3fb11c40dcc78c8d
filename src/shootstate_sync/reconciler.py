"""Secret to ShootState synchronisation.

Secrets in a shoot's seed namespace are mirrored into the shoot's ShootState
in the garden cluster. A finalizer on the secret keeps it around until its
entry has been removed from the ShootState again.

The ShootState and the seed's Cluster resource are deleted only after the
shoot itself is gone. Once either is missing it never reappears for the
secret, so a missing record releases the finalizer instead of blocking the
secret's deletion.

While a shoot is migrating, deleted secrets keep their ShootState entry so
the destination seed can restore them. This only looks at the type of the
shoot's last operation: a failed migration keeps the entries too.
"""

import logging
import time
from typing import Any

from shootstate_sync.config import GARDEN_ROLE_SHOOT, LABEL_GARDEN_ROLE, SyncConfig
from shootstate_sync.errors import NotFoundError, StoreError
from shootstate_sync.finalizers import add_finalizer, has_finalizer, remove_finalizer
from shootstate_sync.logging_config import reconcile_key_ctx
from shootstate_sync.lookup import get_shoot_state_for_cluster
from shootstate_sync.metrics import RECONCILE_DURATION, RECONCILE_TOTAL
from shootstate_sync.patch import commit_shoot_state
from shootstate_sync.state import (
    RESOURCE_DATA_TYPE_SECRET,
    ReconcileResult,
    ResourceData,
    Secret,
    SecretState,
    Shoot,
    ShootState,
    classify_secret,
)

logger = logging.getLogger(__name__)

OUTCOME_GONE = "gone"
OUTCOME_OUT_OF_SCOPE = "out_of_scope"
OUTCOME_STATE_GONE = "state_gone"
OUTCOME_SYNCED = "synced"
OUTCOME_REMOVED = "removed"
OUTCOME_KEPT_FOR_MIGRATION = "kept_for_migration"


def parse_key(key: str) -> tuple[str, str]:
    """Split a ``namespace/name`` key."""
    namespace, sep, name = key.partition("/")
    if not sep or not namespace or not name:
        raise ValueError(f"invalid key {key!r}, expected namespace/name")
    return namespace, name


class SecretReconciler:
    """Reconciles seed secrets into ShootStates."""

    def __init__(
        self,
        garden_client: Any,
        seed_client: Any,
        config: SyncConfig | None = None,
    ):
        """Initialize reconciler."""
        self.garden = garden_client
        self.seed = seed_client
        self.config = config or SyncConfig()

    @property
    def finalizer(self) -> str:
        return self.config.finalizer_name

    async def handle(self, key: str) -> ReconcileResult:
        """Reconcile the secret identified by ``namespace/name``.

        Returns the outcome; raises StoreError when the caller should retry.
        """
        namespace, name = parse_key(key)
        ctx_token = reconcile_key_ctx.set(key)
        start = time.perf_counter()
        try:
            result = await self._handle(namespace, name)
        except Exception:
            RECONCILE_TOTAL.labels(outcome="error").inc()
            raise
        finally:
            RECONCILE_DURATION.observe(time.perf_counter() - start)
            reconcile_key_ctx.reset(ctx_token)

        RECONCILE_TOTAL.labels(outcome=result.outcome).inc()
        return result

    async def _handle(self, namespace: str, name: str) -> ReconcileResult:
        key = f"{namespace}/{name}"

        try:
            secret_obj = await self.seed.get("Secret", namespace, name)
        except NotFoundError:
            logger.debug("Object is gone, stop reconciling")
            return ReconcileResult(key, OUTCOME_GONE)
        except StoreError as e:
            raise StoreError(
                f"error retrieving object from store: {e}", status_code=e.status_code
            ) from e

        namespace_obj = await self.seed.get("Namespace", None, namespace)
        ns_labels = namespace_obj.get("metadata", {}).get("labels") or {}
        if ns_labels.get(LABEL_GARDEN_ROLE) != GARDEN_ROLE_SHOOT:
            return ReconcileResult(key, OUTCOME_OUT_OF_SCOPE)

        try:
            shoot_state_obj, shoot = await get_shoot_state_for_cluster(
                self.garden, self.seed, namespace
            )
        except NotFoundError:
            if has_finalizer(secret_obj, self.finalizer):
                logger.info("Removing finalizer")
                await self._remove_finalizer(secret_obj)
            return ReconcileResult(key, OUTCOME_STATE_GONE)

        secret = Secret.from_dict(secret_obj)
        state = classify_secret(secret, shoot)
        if state is SecretState.LIVE:
            return await self._reconcile(secret_obj, secret, shoot_state_obj)
        return await self._delete(secret_obj, secret, shoot_state_obj, shoot, state)

    async def _reconcile(
        self,
        secret_obj: dict[str, Any],
        secret: Secret,
        shoot_state_obj: dict[str, Any],
    ) -> ReconcileResult:
        logger.info("Reconciling secret information in ShootState and ensuring its finalizer")

        if not has_finalizer(secret_obj, self.finalizer):
            logger.info("Adding finalizer")
            try:
                await add_finalizer(self.seed, "Secret", secret_obj, self.finalizer)
            except StoreError as e:
                raise StoreError(f"failed to add finalizer: {e}", status_code=e.status_code) from e

        shoot_state = ShootState.from_dict(shoot_state_obj)
        shoot_state.gardener.upsert(
            ResourceData(
                name=secret.name,
                labels=dict(secret.labels) or None,
                type=RESOURCE_DATA_TYPE_SECRET,
                data=secret.serialize_data(),
            )
        )
        await commit_shoot_state(self.garden, shoot_state_obj, shoot_state.to_dict())

        return ReconcileResult(secret.key, OUTCOME_SYNCED)

    async def _delete(
        self,
        secret_obj: dict[str, Any],
        secret: Secret,
        shoot_state_obj: dict[str, Any],
        shoot: Shoot,
        state: SecretState,
    ) -> ReconcileResult:
        if state is SecretState.DELETING_DURING_MIGRATION:
            logger.info(
                "Keeping Secret in ShootState since Shoot is in migration but releasing the finalizer",
                extra={"last_operation_state": shoot.last_operation.state},
            )
            outcome = OUTCOME_KEPT_FOR_MIGRATION
        else:
            logger.info("Removing Secret from ShootState and releasing its finalizer")
            shoot_state = ShootState.from_dict(shoot_state_obj)
            shoot_state.gardener.delete(secret.name)
            await commit_shoot_state(self.garden, shoot_state_obj, shoot_state.to_dict())
            outcome = OUTCOME_REMOVED

        if has_finalizer(secret_obj, self.finalizer):
            logger.info("Removing finalizer")
            await self._remove_finalizer(secret_obj)

        return ReconcileResult(secret.key, outcome)

    async def _remove_finalizer(self, secret_obj: dict[str, Any]) -> None:
        try:
            await remove_finalizer(self.seed, "Secret", secret_obj, self.finalizer)
        except StoreError as e:
            raise StoreError(f"failed to remove finalizer: {e}", status_code=e.status_code) from e
