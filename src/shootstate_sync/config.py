"""
Shootstate Sync Configuration

Connection settings for the garden and seed clusters and the fixed values
the secret controller works with. Override with environment variables or a
YAML file.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Optional

FINALIZER_NAME = "gardenlet.gardener.cloud/secret-controller"

# Namespace label marking a shoot's control plane namespace in the seed
LABEL_GARDEN_ROLE = "gardener.cloud/role"
GARDEN_ROLE_SHOOT = "shoot"

# ManagedResources created by gardener carry this label
LABEL_KEY_ORIGIN = "origin"
LABEL_VALUE_GARDENER = "gardener"

LEGACY_PRIORITY_CLASSES = ("reversed-vpn-auth-server", "fluent-bit")


@dataclass
class ClusterConfig:
    """Connection settings for one cluster API server."""

    name: str
    url: str = "https://127.0.0.1:6443"
    token: Optional[str] = None
    ca_file: Optional[str] = None
    verify: bool = True
    timeout: float = 30.0
    # Take credentials from the pod service account or a kubeconfig instead
    in_cluster: bool = False
    kubeconfig: Optional[str] = None
    context: Optional[str] = None

    def __post_init__(self):
        prefix = f"SHOOTSTATE_SYNC_{self.name.upper()}"
        self.url = os.getenv(f"{prefix}_URL", self.url)
        self.token = os.getenv(f"{prefix}_TOKEN", self.token)
        self.ca_file = os.getenv(f"{prefix}_CA_FILE", self.ca_file)
        self.verify = os.getenv(f"{prefix}_VERIFY", str(self.verify)).lower() == "true"
        self.timeout = float(os.getenv(f"{prefix}_TIMEOUT", self.timeout))
        self.in_cluster = os.getenv(f"{prefix}_IN_CLUSTER", str(self.in_cluster)).lower() == "true"
        self.kubeconfig = os.getenv(f"{prefix}_KUBECONFIG", self.kubeconfig)
        self.context = os.getenv(f"{prefix}_CONTEXT", self.context)


@dataclass(frozen=True)
class SyncConfig:
    """Settings of the secret controller."""

    finalizer_name: str = FINALIZER_NAME
    garden: ClusterConfig = field(default_factory=lambda: ClusterConfig("garden"))
    seed: ClusterConfig = field(default_factory=lambda: ClusterConfig("seed"))
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        """Build from a parsed mapping; environment variables still win."""
        return cls(
            finalizer_name=data.get("finalizerName", FINALIZER_NAME),
            garden=ClusterConfig("garden", **_cluster_kwargs(data.get("garden", {}))),
            seed=ClusterConfig("seed", **_cluster_kwargs(data.get("seed", {}))),
            log_level=data.get("logLevel", "INFO"),
            log_json=data.get("logJson", True),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "SyncConfig":
        """Load configuration from YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)


def _cluster_kwargs(data: dict[str, Any]) -> dict[str, Any]:
    kwargs = {}
    for key, attr in (
        ("url", "url"),
        ("token", "token"),
        ("caFile", "ca_file"),
        ("verify", "verify"),
        ("timeout", "timeout"),
        ("inCluster", "in_cluster"),
        ("kubeconfig", "kubeconfig"),
        ("context", "context"),
    ):
        if key in data:
            kwargs[attr] = data[key]
    return kwargs
