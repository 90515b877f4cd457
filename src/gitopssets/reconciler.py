"""
Applies the rendered resources of a GitOpsSet and prunes the resources that it no longer renders.
"""

import copy
from dataclasses import dataclass, field
from typing import Any

from gitopssets.context import ReconcileContext
from gitopssets.resources import GROUP
from gitopssets.resources.gitopsset import GitOpsSet
from gitopssets.resources.inventory import (
    LABEL_NAME,
    LABEL_NAMESPACE,
    LABEL_SET_ID,
    ResourceInventory,
    ResourceRef,
    calculate_set_id,
)
from gitopssets.store import ObjectStore
from gitopssets.tools.types import Manifest, Manifests


@dataclass
class ReconcileResult:
    inventory: ResourceInventory
    """ The inventory of the resources that exist after the reconciliation. """

    created: list[ResourceRef] = field(default_factory=list)
    updated: list[ResourceRef] = field(default_factory=list)
    deleted: list[ResourceRef] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"{len(self.inventory)} resources created"


def owner_labels(owner: GitOpsSet) -> dict[str, str]:
    """
    Return the labels that mark a resource as generated by *owner*.
    """

    return {
        LABEL_NAME: owner.metadata.name,
        LABEL_NAMESPACE: owner.namespace,
        LABEL_SET_ID: calculate_set_id(name=owner.metadata.name, namespace=owner.namespace, group=GROUP),
    }


def is_subset(desired: Any, live: Any) -> bool:
    """
    Check if every field of *desired* has the same value in *live*. Mappings in *live* may have additional keys,
    lists must have the same length.
    """

    if isinstance(desired, dict):
        return isinstance(live, dict) and all(key in live and is_subset(desired[key], live[key]) for key in desired)
    if isinstance(desired, list):
        return (
            isinstance(live, list)
            and len(desired) == len(live)
            and all(is_subset(left, right) for left, right in zip(desired, live))
        )
    return bool(desired == live)


class InventoryReconciler:
    """
    Reconciles the rendered resources of a GitOpsSet against the inventory of the previous reconciliation.

    Resources are created if they don't exist and updated if they differ from the rendered manifest; a resource that
    already matches causes no call at all. Resources in the previous inventory that are no longer rendered are
    deleted. The new inventory is only returned if every call succeeded, otherwise the error is raised and the caller
    keeps the previous inventory.
    """

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    def reconcile(
        self,
        ctx: ReconcileContext,
        owner: GitOpsSet,
        manifests: Manifests,
        previous: ResourceInventory | None,
    ) -> ReconcileResult:
        """
        Raises:
            GitOpsSetError: If a resource can not be read, written or deleted, or if the previous inventory is
                malformed.
        """

        labels = owner_labels(owner)

        desired: dict[str, tuple[ResourceRef, Manifest]] = {}
        for manifest in manifests:
            manifest = _with_labels(manifest, labels)
            ref = ResourceRef.from_manifest(manifest)
            if ref.id in desired:
                ctx.log.warning("{} is rendered more than once, the last rendering is applied", ref)
            desired[ref.id] = (ref, manifest)

        previous_refs = {ref.id: ref for ref in (previous.refs() if previous else [])}
        result = ReconcileResult(ResourceInventory())

        for id, (ref, manifest) in desired.items():
            live = self._store.get(ctx, ref)
            if live is None:
                ctx.log.info("Creating {}", ref)
                self._store.create(ctx, manifest)
                result.created.append(ref)
            elif is_subset(manifest, live):
                ctx.log.debug("{} is up to date", ref)
            else:
                if id not in previous_refs:
                    ctx.log.info("Adopting existing {}", ref)
                else:
                    ctx.log.info("Updating {}", ref)
                self._store.update(ctx, manifest)
                result.updated.append(ref)

        for id, ref in previous_refs.items():
            if id in desired:
                continue
            ctx.log.info("Deleting {}", ref)
            if not self._store.delete(ctx, ref):
                ctx.log.debug("{} was already deleted", ref)
            result.deleted.append(ref)

        result.inventory = ResourceInventory.from_refs([ref for ref, _ in desired.values()])
        ctx.log.debug(
            "Reconciled {} resource(s): {} created, {} updated, {} deleted",
            len(result.inventory),
            len(result.created),
            len(result.updated),
            len(result.deleted),
        )
        return result


def _with_labels(manifest: Manifest, labels: dict[str, str]) -> Manifest:
    manifest = Manifest(copy.deepcopy(manifest))
    metadata = manifest.setdefault("metadata", {})
    metadata["labels"] = {**(metadata.get("labels") or {}), **labels}
    return manifest
