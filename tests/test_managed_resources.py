"""
Tests for shootstate_sync.managed_resources module
"""

import pytest

from conftest import SEED_NAMESPACE, FakeStore


def managed_resource(name, namespace=SEED_NAMESPACE, origin="gardener"):
    labels = {"origin": origin} if origin else {}
    return {
        "apiVersion": "resources.gardener.cloud/v1alpha1",
        "kind": "ManagedResource",
        "metadata": {"name": name, "namespace": namespace, "labels": labels},
        "spec": {"secretRefs": [{"name": name}]},
    }


@pytest.fixture
def seed_with_resources():
    seed = FakeStore()
    seed.add("ManagedResource", managed_resource("kube-proxy"))
    seed.add("ManagedResource", managed_resource("coredns"))
    seed.add("ManagedResource", managed_resource("extension", origin="provider-aws"))
    seed.add("ManagedResource", managed_resource("other-ns", namespace="garden"))
    return seed


class TestManagedResources:
    """Tests for ManagedResource helpers."""

    @pytest.mark.asyncio
    async def test_delete_only_gardener_origin(self, seed_with_resources):
        from shootstate_sync.managed_resources import delete_managed_resources

        await delete_managed_resources(seed_with_resources, SEED_NAMESPACE)

        remaining = await seed_with_resources.list("ManagedResource")
        assert sorted(r["metadata"]["name"] for r in remaining) == ["extension", "other-ns"]

    @pytest.mark.asyncio
    async def test_wait_returns_when_empty(self):
        from shootstate_sync.managed_resources import wait_until_managed_resources_deleted

        seed = FakeStore()
        seed.add("ManagedResource", managed_resource("unrelated", origin=None))

        await wait_until_managed_resources_deleted(seed, SEED_NAMESPACE, interval=0, timeout=1)

    @pytest.mark.asyncio
    async def test_wait_times_out(self, seed_with_resources):
        from shootstate_sync.errors import StoreError
        from shootstate_sync.managed_resources import wait_until_managed_resources_deleted

        with pytest.raises(StoreError, match="coredns"):
            await wait_until_managed_resources_deleted(
                seed_with_resources, SEED_NAMESPACE, interval=0, timeout=0
            )

    @pytest.mark.asyncio
    async def test_keep_objects(self, seed_with_resources):
        from shootstate_sync.managed_resources import keep_objects_for_managed_resources

        count = await keep_objects_for_managed_resources(seed_with_resources, SEED_NAMESPACE)

        assert count == 2
        for name in ("kube-proxy", "coredns"):
            spec = seed_with_resources.stored("ManagedResource", SEED_NAMESPACE, name)["spec"]
            assert spec == {"secretRefs": [{"name": name}], "keepObjects": True}
        extension = seed_with_resources.stored("ManagedResource", SEED_NAMESPACE, "extension")
        assert "keepObjects" not in extension["spec"]

    @pytest.mark.asyncio
    async def test_keep_objects_list_failure(self):
        from shootstate_sync.errors import StoreError
        from shootstate_sync.managed_resources import keep_objects_for_managed_resources

        seed = FakeStore()
        seed.failures[("list", "ManagedResource")] = StoreError("unavailable")

        with pytest.raises(StoreError, match="failed to list all managed resources: unavailable"):
            await keep_objects_for_managed_resources(seed, SEED_NAMESPACE)


class TestCleanupLegacyPriorityClasses:
    """Tests for cleanup_legacy_priority_classes."""

    @pytest.mark.asyncio
    async def test_nothing_to_clean(self):
        from shootstate_sync.managed_resources import cleanup_legacy_priority_classes

        assert await cleanup_legacy_priority_classes(FakeStore()) == []

    @pytest.mark.asyncio
    async def test_deletes_legacy_only(self):
        from shootstate_sync.managed_resources import cleanup_legacy_priority_classes

        seed = FakeStore()
        for name in ("reversed-vpn-auth-server", "fluent-bit", "random"):
            seed.add("PriorityClass", {"metadata": {"name": name}, "value": 1})

        deleted = await cleanup_legacy_priority_classes(seed)

        assert deleted == ["reversed-vpn-auth-server", "fluent-bit"]
        remaining = await seed.list("PriorityClass")
        assert [pc["metadata"]["name"] for pc in remaining] == ["random"]

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        from shootstate_sync.errors import StoreError
        from shootstate_sync.managed_resources import cleanup_legacy_priority_classes

        seed = FakeStore()
        seed.failures[("delete", "PriorityClass")] = StoreError("forbidden", status_code=403)

        with pytest.raises(StoreError, match="forbidden"):
            await cleanup_legacy_priority_classes(seed)
