"""
Pytest configuration and fixtures for shootstate-sync tests
"""

import base64
import copy
import sys
from pathlib import Path

import pytest

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from shootstate_sync.client import KINDS, MERGE_PATCH, STRATEGIC_MERGE_PATCH  # noqa: E402
from shootstate_sync.errors import ConflictError, NotFoundError  # noqa: E402
from shootstate_sync.patch import apply_merge_patch, apply_strategic_merge_patch  # noqa: E402

FINALIZER = "gardenlet.gardener.cloud/secret-controller"
SEED_NAMESPACE = "shoot--dev--foo"


class FakeStore:
    """In-memory stand-in for KubeClient.

    Applies merge and strategic merge patches, honours resourceVersion in
    patches, records every call and can be told to fail per operation/kind.
    """

    def __init__(self):
        self.objects: dict[tuple[str, str | None, str], dict] = {}
        self.calls: list[tuple] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self._version = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None

    def _key(self, kind, namespace, name):
        return (kind, namespace if KINDS[kind].namespaced else None, name)

    def _bump(self, obj):
        self._version += 1
        obj.setdefault("metadata", {})["resourceVersion"] = str(self._version)

    def _maybe_fail(self, operation, kind):
        err = self.failures.get((operation, kind))
        if err is not None:
            raise err

    def add(self, kind, obj):
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        self._bump(obj)
        self.objects[self._key(kind, meta.get("namespace"), meta["name"])] = obj
        return copy.deepcopy(obj)

    def stored(self, kind, namespace, name):
        return copy.deepcopy(self.objects.get(self._key(kind, namespace, name)))

    def calls_for(self, operation, kind=None):
        return [c for c in self.calls if c[0] == operation and (kind is None or c[1] == kind)]

    async def get(self, kind, namespace, name):
        self.calls.append(("get", kind, namespace, name))
        self._maybe_fail("get", kind)
        obj = self.objects.get(self._key(kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"get {kind} {namespace}/{name}: not found")
        return copy.deepcopy(obj)

    async def list(self, kind, namespace=None, labels=None):
        self.calls.append(("list", kind, namespace, labels))
        self._maybe_fail("list", kind)
        return [copy.deepcopy(obj) for obj in self._matching(kind, namespace, labels)]

    async def patch(self, kind, namespace, name, body, patch_type=MERGE_PATCH):
        self.calls.append(("patch", kind, namespace, name, copy.deepcopy(body), patch_type))
        self._maybe_fail("patch", kind)
        key = self._key(kind, namespace, name)
        obj = self.objects.get(key)
        if obj is None:
            raise NotFoundError(f"patch {kind} {namespace}/{name}: not found")

        wanted_version = body.get("metadata", {}).get("resourceVersion")
        if wanted_version is not None and wanted_version != obj["metadata"]["resourceVersion"]:
            raise ConflictError(f"patch {kind} {namespace}/{name}: conflict")

        if patch_type == STRATEGIC_MERGE_PATCH:
            updated = apply_strategic_merge_patch(obj, body)
        else:
            updated = apply_merge_patch(obj, body)
        self._bump(updated)
        self.objects[key] = updated
        return copy.deepcopy(updated)

    async def delete(self, kind, namespace, name):
        self.calls.append(("delete", kind, namespace, name))
        self._maybe_fail("delete", kind)
        if self.objects.pop(self._key(kind, namespace, name), None) is None:
            raise NotFoundError(f"delete {kind} {namespace}/{name}: not found")

    async def delete_all_of(self, kind, namespace=None, labels=None):
        self.calls.append(("deletecollection", kind, namespace, labels))
        self._maybe_fail("deletecollection", kind)
        for obj in list(self._matching(kind, namespace, labels)):
            meta = obj["metadata"]
            del self.objects[self._key(kind, meta.get("namespace"), meta["name"])]

    def _matching(self, kind, namespace, labels):
        for (obj_kind, obj_ns, _), obj in self.objects.items():
            if obj_kind != kind:
                continue
            if namespace and KINDS[kind].namespaced and obj_ns != namespace:
                continue
            obj_labels = obj["metadata"].get("labels") or {}
            if labels and any(obj_labels.get(k) != v for k, v in labels.items()):
                continue
            yield obj


def secret_obj(name="ca", namespace=SEED_NAMESPACE, data=None, labels=None, finalizers=None, deleting=False):
    """Build a Secret in its API representation."""
    meta = {"name": name, "namespace": namespace}
    if labels is not None:
        meta["labels"] = labels
    if finalizers:
        meta["finalizers"] = list(finalizers)
    if deleting:
        meta["deletionTimestamp"] = "2026-10-19T10:00:00Z"
    encoded = {k: base64.b64encode(v).decode() for k, v in (data or {}).items()}
    return {"apiVersion": "v1", "kind": "Secret", "metadata": meta, "data": encoded}


def shoot_obj(name="foo", namespace="garden-dev", last_operation_type=None, last_operation_state="Succeeded"):
    """Build a Shoot as embedded in a Cluster resource."""
    shoot = {
        "apiVersion": "core.gardener.cloud/v1beta1",
        "kind": "Shoot",
        "metadata": {"name": name, "namespace": namespace},
        "status": {},
    }
    if last_operation_type:
        shoot["status"]["lastOperation"] = {
            "type": last_operation_type,
            "state": last_operation_state,
        }
    return shoot


def shoot_state_obj(name="foo", namespace="garden-dev", gardener=None):
    """Build a ShootState in its API representation."""
    obj = {
        "apiVersion": "core.gardener.cloud/v1alpha1",
        "kind": "ShootState",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {},
    }
    if gardener is not None:
        obj["spec"]["gardener"] = copy.deepcopy(gardener)
    return obj


@pytest.fixture
def garden():
    """Fake garden cluster."""
    return FakeStore()


@pytest.fixture
def seed():
    """Fake seed cluster with a shoot namespace."""
    store = FakeStore()
    store.add("Namespace", {
        "metadata": {"name": SEED_NAMESPACE, "labels": {"gardener.cloud/role": "shoot"}},
    })
    return store


@pytest.fixture
def shoot_cluster(garden, seed):
    """Register a shoot in the seed's Cluster resource and its ShootState in the garden.

    Returns a function taking the last operation type and the initial data list.
    """
    def _setup(last_operation_type=None, last_operation_state="Succeeded", gardener=None):
        seed.add("Cluster", {
            "apiVersion": "extensions.gardener.cloud/v1alpha1",
            "kind": "Cluster",
            "metadata": {"name": SEED_NAMESPACE},
            "spec": {"shoot": shoot_obj(
                last_operation_type=last_operation_type,
                last_operation_state=last_operation_state,
            )},
        })
        return garden.add("ShootState", shoot_state_obj(gardener=gardener))

    return _setup


# Markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
