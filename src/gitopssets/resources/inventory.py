"""
The inventory records every resource that a GitOpsSet caused to exist, so that resources can be pruned once they are
no longer generated.
"""

import base64
from dataclasses import dataclass, field
import hashlib
from typing import Any

from gitopssets.errors import DataError
from gitopssets.tools.types import Manifest

LABEL_NAME = "gitopssets.io/name"
""" Label key holding the name of the GitOpsSet that a resource was generated by. """

LABEL_NAMESPACE = "gitopssets.io/namespace"
""" Label key holding the namespace of the GitOpsSet that a resource was generated by. """

LABEL_SET_ID = "gitopssets.io/set-id"
""" Label key holding the ID of the GitOpsSet that a resource was generated by, see `calculate_set_id()`. """


@dataclass(frozen=True, order=True)
class ResourceRef:
    """
    Identifies a Kubernetes object. Cluster-scoped objects have an empty namespace.
    """

    group: str
    version: str
    kind: str
    namespace: str
    name: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def id(self) -> str:
        """
        The ID of the object in an inventory entry. The version is not part of the ID, so that moving a resource to
        another API version does not prune it.
        """

        return f"{self.namespace}_{self.name}_{self.group}_{self.kind}"

    @staticmethod
    def from_manifest(manifest: Manifest | dict[str, Any]) -> "ResourceRef":
        api_version: str = manifest["apiVersion"]
        group, _, version = api_version.rpartition("/")
        metadata = manifest.get("metadata") or {}
        return ResourceRef(
            group=group,
            version=version,
            kind=manifest["kind"],
            namespace=metadata.get("namespace") or "",
            name=metadata["name"],
        )

    @staticmethod
    def from_entry(entry: "InventoryEntry") -> "ResourceRef":
        """
        Parse an inventory entry. Names and namespaces can not contain underscores, but the group can be empty and
        the kind is the last component.

        Raises:
            DataError: If the entry ID is malformed.
        """

        parts = entry.id.split("_")
        if len(parts) != 4:
            raise DataError(f"invalid inventory entry ID: {entry.id!r}")
        namespace, name, group, kind = parts
        return ResourceRef(group=group, version=entry.v, kind=kind, namespace=namespace, name=name)

    def __str__(self) -> str:
        kind = get_canonical_resource_kind_name(self.api_version, self.kind)
        return f"{kind} {self.namespace}/{self.name}" if self.namespace else f"{kind} {self.name}"


@dataclass
class InventoryEntry:
    id: str
    v: str


@dataclass
class ResourceInventory:
    entries: list[InventoryEntry] = field(default_factory=list)

    def refs(self) -> list[ResourceRef]:
        return [ResourceRef.from_entry(entry) for entry in self.entries]

    @staticmethod
    def from_refs(refs: "list[ResourceRef] | set[ResourceRef]") -> "ResourceInventory":
        """
        Create an inventory from the given refs. Entries are sorted by their ID, so that the inventory of the same set
        of resources is always the same.
        """

        entries = {ref.id: InventoryEntry(ref.id, ref.version) for ref in refs}
        return ResourceInventory([entries[key] for key in sorted(entries)])

    def to_json(self) -> dict[str, Any]:
        return {"entries": [{"id": entry.id, "v": entry.v} for entry in self.entries]}

    def __len__(self) -> int:
        return len(self.entries)


def calculate_set_id(*, name: str, namespace: str, group: str) -> str:
    """
    Calculate a stable ID for a GitOpsSet that is used to label the resources it generates. The ID is computed the
    same way as the ID of a Kubernetes ApplySet.
    """

    # reference: https://kubernetes.io/docs/reference/labels-annotations-taints/#applyset-kubernetes-io-id
    hash = hashlib.sha256(f"{name}.{namespace}.GitOpsSet.{group}".encode()).digest()
    uid = base64.b64encode(hash).decode().rstrip("=").replace("/", "_").replace("+", "-")
    return f"gitopsset-{uid}-v1"


def get_canonical_resource_kind_name(api_version: str, kind: str) -> str:
    """
    Given the apiVersion and kind of a Kubernetes resource, return the canonical name of the resource kind, e.g.
    `Deployment.apps` or `Service`.
    """

    return (f"{kind}." + (api_version.split("/")[0] if "/" in api_version else "")).rstrip(".")
