"""Minimal async client for the Kubernetes REST API."""

import logging
import ssl
from dataclasses import dataclass
from typing import Any

import httpx
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from shootstate_sync.config import ClusterConfig
from shootstate_sync.errors import ConflictError, NotFoundError, StoreError
from shootstate_sync.metrics import STORE_ERRORS_TOTAL

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"
STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"


@dataclass(frozen=True)
class Kind:
    """REST mapping of a resource kind."""

    group: str
    version: str
    plural: str
    namespaced: bool = True

    @property
    def prefix(self) -> str:
        if self.group:
            return f"/apis/{self.group}/{self.version}"
        return f"/api/{self.version}"


KINDS: dict[str, Kind] = {
    "Secret": Kind("", "v1", "secrets"),
    "Namespace": Kind("", "v1", "namespaces", namespaced=False),
    "Cluster": Kind("extensions.gardener.cloud", "v1alpha1", "clusters", namespaced=False),
    "ShootState": Kind("core.gardener.cloud", "v1alpha1", "shootstates"),
    "ManagedResource": Kind("resources.gardener.cloud", "v1alpha1", "managedresources"),
    "PriorityClass": Kind("scheduling.k8s.io", "v1", "priorityclasses", namespaced=False),
}


def resource_path(kind: str, namespace: str | None = None, name: str | None = None) -> str:
    """Build the REST path for a kind, optionally scoped to namespace and name."""
    mapping = KINDS[kind]
    path = mapping.prefix
    if mapping.namespaced and namespace:
        path += f"/namespaces/{namespace}"
    path += f"/{mapping.plural}"
    if name:
        path += f"/{name}"
    return path


def label_selector(labels: dict[str, str] | None) -> str | None:
    if not labels:
        return None
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


class KubeClient:
    """Talks to one cluster's API server.

    Not-found and conflict responses are raised as ``NotFoundError`` and
    ``ConflictError``; everything else that fails is a ``StoreError``.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        ca_file: str | None = None,
        verify: bool = True,
        timeout: float = 30.0,
        cert_file: str | None = None,
        key_file: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client."""
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if cert_file:
            # Client certificate authentication, as kubeconfigs often use
            tls: ssl.SSLContext | str | bool = ssl.create_default_context(cafile=ca_file)
            if not verify:
                tls.check_hostname = False
                tls.verify_mode = ssl.CERT_NONE
            tls.load_cert_chain(cert_file, key_file)
        else:
            tls = ca_file if (verify and ca_file) else verify

        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            verify=tls,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ClusterConfig) -> "KubeClient":
        """Build a client from connection settings.

        With ``in_cluster`` or ``kubeconfig`` set, server and credentials are
        loaded by the kubernetes client library; ``timeout`` still applies.
        """
        if not (config.in_cluster or config.kubeconfig):
            return cls(
                config.url,
                token=config.token,
                ca_file=config.ca_file,
                verify=config.verify,
                timeout=config.timeout,
            )

        conf = k8s_client.Configuration()
        try:
            if config.in_cluster:
                k8s_config.load_incluster_config(client_configuration=conf)
            else:
                k8s_config.load_kube_config(
                    config_file=config.kubeconfig,
                    context=config.context,
                    client_configuration=conf,
                )
        except k8s_config.ConfigException as e:
            raise StoreError(f"failed to load {config.name} cluster credentials: {e}") from e

        logger.debug("Loaded %s cluster credentials for %s", config.name, conf.host)
        # The loaders store "Bearer <token>"
        authorization = (conf.api_key or {}).get("authorization")
        token = authorization.split(" ", 1)[-1] if authorization else None
        return cls(
            conf.host,
            token=token,
            ca_file=conf.ssl_ca_cert,
            verify=conf.verify_ssl,
            timeout=config.timeout,
            cert_file=conf.cert_file,
            key_file=conf.key_file,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self.http_client.aclose()

    async def __aenter__(self) -> "KubeClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            response = await self.http_client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            STORE_ERRORS_TOTAL.labels(operation=operation).inc()
            raise StoreError(f"{operation} {path}: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{operation} {path}: not found")
        if response.status_code == 409:
            STORE_ERRORS_TOTAL.labels(operation=operation).inc()
            raise ConflictError(f"{operation} {path}: conflict: {_reason(response)}")
        if response.status_code >= 400:
            STORE_ERRORS_TOTAL.labels(operation=operation).inc()
            raise StoreError(
                f"{operation} {path}: HTTP {response.status_code}: {_reason(response)}",
                status_code=response.status_code,
            )

        logger.debug("%s %s -> %s", method, path, response.status_code)
        if not response.content:
            return {}
        return response.json()

    async def get(self, kind: str, namespace: str | None, name: str) -> dict[str, Any]:
        """Get a single object."""
        return await self._request("get", "GET", resource_path(kind, namespace, name))

    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """List objects, optionally filtered by namespace and labels."""
        params = {}
        selector = label_selector(labels)
        if selector:
            params["labelSelector"] = selector
        result = await self._request("list", "GET", resource_path(kind, namespace), params=params)
        return result.get("items") or []

    async def patch(
        self,
        kind: str,
        namespace: str | None,
        name: str,
        body: dict[str, Any],
        patch_type: str = MERGE_PATCH,
    ) -> dict[str, Any]:
        """Patch an object."""
        return await self._request(
            "patch",
            "PATCH",
            resource_path(kind, namespace, name),
            json=body,
            headers={"Content-Type": patch_type},
        )

    async def delete(self, kind: str, namespace: str | None, name: str) -> None:
        """Delete a single object."""
        await self._request("delete", "DELETE", resource_path(kind, namespace, name))

    async def delete_all_of(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Delete every object matching namespace and labels."""
        params = {}
        selector = label_selector(labels)
        if selector:
            params["labelSelector"] = selector
        await self._request("deletecollection", "DELETE", resource_path(kind, namespace), params=params)


def _reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return body.get("message", response.text)
    return response.text
