"""State definitions for secret synchronisation."""

import base64
import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

RESOURCE_DATA_TYPE_SECRET = "secret"
LAST_OPERATION_TYPE_MIGRATE = "Migrate"


class SecretState(Enum):
    """Lifecycle state of a secret as derived from its observed fields."""

    LIVE = "live"
    DELETING = "deleting"
    DELETING_DURING_MIGRATION = "deleting_during_migration"


@dataclass
class Secret:
    """A namespaced secret in the seed cluster."""

    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    data: dict[str, bytes] = field(default_factory=dict)
    deletion_timestamp: str | None = None
    finalizers: list[str] = field(default_factory=list)
    resource_version: str | None = None

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "Secret":
        """Build from the API representation."""
        meta = obj.get("metadata", {})
        data = {
            key: base64.b64decode(value)
            for key, value in (obj.get("data") or {}).items()
        }
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta["name"],
            labels=dict(meta.get("labels") or {}),
            data=data,
            deletion_timestamp=meta.get("deletionTimestamp"),
            finalizers=list(meta.get("finalizers") or []),
            resource_version=meta.get("resourceVersion"),
        )

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_deleting(self) -> bool:
        return self.deletion_timestamp is not None

    def serialize_data(self) -> bytes:
        """Canonical JSON bytes of the data payload (base64 values, sorted keys)."""
        encoded = {
            key: base64.b64encode(value).decode("ascii")
            for key, value in self.data.items()
        }
        return canonical_json(encoded)


def canonical_json(value: Any) -> bytes:
    """Serialize to compact JSON with sorted keys."""
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass
class LastOperation:
    """Last high-level operation recorded for a shoot."""

    type: str
    state: str = ""


@dataclass
class Shoot:
    """Read-only lifecycle view of a managed cluster."""

    name: str
    namespace: str
    last_operation: LastOperation | None = None

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "Shoot":
        """Build from the API representation."""
        meta = obj.get("metadata", {})
        last_op = (obj.get("status") or {}).get("lastOperation")
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            last_operation=(
                LastOperation(type=last_op.get("type", ""), state=last_op.get("state", ""))
                if last_op
                else None
            ),
        )

    @property
    def is_migrating(self) -> bool:
        """Whether the last operation is a migration, whatever its outcome."""
        return (
            self.last_operation is not None
            and self.last_operation.type == LAST_OPERATION_TYPE_MIGRATE
        )


def classify_secret(secret: Secret, shoot: Shoot) -> SecretState:
    """Map a secret and its shoot onto the reconcile/delete variants."""
    if not secret.is_deleting:
        return SecretState.LIVE
    if shoot.is_migrating:
        return SecretState.DELETING_DURING_MIGRATION
    return SecretState.DELETING


@dataclass
class ResourceData:
    """A single named entry of a ShootState's gardener data list.

    ``data`` holds the raw JSON bytes of the payload.
    """

    name: str
    type: str
    data: bytes = b""
    labels: dict[str, str] | None = None

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "ResourceData":
        return cls(
            name=obj["name"],
            type=obj.get("type", ""),
            data=canonical_json(obj["data"]) if "data" in obj else b"",
            labels=dict(obj["labels"]) if obj.get("labels") is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"name": self.name}
        if self.labels is not None:
            result["labels"] = dict(self.labels)
        if self.type:
            result["type"] = self.type
        if self.data:
            result["data"] = json.loads(self.data)
        return result


class ResourceDataList:
    """Ordered, name-keyed list of resource data entries.

    Entry names are unique after every operation. The list works on its own
    copy of the entries; persisting it is up to the caller.
    """

    def __init__(self, entries: list[ResourceData] | None = None):
        self._entries: list[ResourceData] = []
        for entry in entries or []:
            self.upsert(entry)

    @classmethod
    def from_list(cls, items: list[dict[str, Any]] | None) -> "ResourceDataList":
        return cls([ResourceData.from_dict(item) for item in items or []])

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def get(self, name: str) -> ResourceData | None:
        """Get an entry by name."""
        for entry in self._entries:
            if entry.name == name:
                return entry
        return None

    def names(self) -> list[str]:
        return [entry.name for entry in self._entries]

    def upsert(self, entry: ResourceData) -> None:
        """Replace the entry with the same name in place, or append it."""
        entry = copy.deepcopy(entry)
        for index, existing in enumerate(self._entries):
            if existing.name == entry.name:
                self._entries[index] = entry
                return
        self._entries.append(entry)

    def delete(self, name: str) -> None:
        """Remove the entry with the given name; no-op if absent."""
        self._entries = [entry for entry in self._entries if entry.name != name]

    def to_list(self) -> list[dict[str, Any]]:
        """Convert to a list of dictionaries."""
        return [entry.to_dict() for entry in self._entries]


@dataclass
class ShootState:
    """Working copy of a ShootState record.

    ``raw`` holds the record as fetched; only ``spec.gardener`` is replaced
    when building the modified document so unknown fields survive.
    """

    raw: dict[str, Any]
    gardener: ResourceDataList = field(default_factory=ResourceDataList)

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "ShootState":
        raw = copy.deepcopy(obj)
        return cls(
            raw=raw,
            gardener=ResourceDataList.from_list((raw.get("spec") or {}).get("gardener")),
        )

    @property
    def namespace(self) -> str:
        return self.raw.get("metadata", {}).get("namespace", "")

    @property
    def name(self) -> str:
        return self.raw.get("metadata", {}).get("name", "")

    def to_dict(self) -> dict[str, Any]:
        """Document with the current data list applied."""
        result = copy.deepcopy(self.raw)
        spec = result.setdefault("spec", {})
        if len(self.gardener) or "gardener" in spec:
            spec["gardener"] = self.gardener.to_list()
        return result


@dataclass
class ReconcileResult:
    """Outcome of a single reconciliation."""

    key: str
    outcome: str
    requeue_after: float | None = None

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "outcome": self.outcome,
            "requeue_after": self.requeue_after,
        }
