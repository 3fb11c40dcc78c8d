"""Secret to ShootState synchronisation for gardener seeds."""

from shootstate_sync.reconciler import SecretReconciler
from shootstate_sync.state import ResourceData, ResourceDataList, ShootState

__all__ = ["SecretReconciler", "ResourceData", "ResourceDataList", "ShootState"]
