import copy
from dataclasses import dataclass, field
from typing import Any, Iterable

from loguru import logger

from gitopssets.context import ReconcileContext
from gitopssets.errors import TransientError
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store import ObjectStore
from gitopssets.tools.selectors import Selector
from gitopssets.tools.types import Manifest


@dataclass
class StoreCall:
    verb: str
    ref: ResourceRef


class InMemoryObjectStore(ObjectStore):
    """
    An object store that keeps objects in memory. It is used to render GitOpsSets without a cluster, seeded from
    local YAML files, and records every mutating call in `calls` so that the calls can be inspected.
    """

    def __init__(self, objects: Iterable[Manifest | dict[str, Any]] = ()) -> None:
        self._objects: dict[ResourceRef, Manifest] = {}
        self.calls: list[StoreCall] = []
        for obj in objects:
            self.add(obj)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({len(self._objects)} objects)"

    def add(self, obj: Manifest | dict[str, Any]) -> None:
        """
        Add an object without recording a call.
        """

        self._objects[_key(ResourceRef.from_manifest(obj))] = Manifest(copy.deepcopy(dict(obj)))

    def remove(self, ref: ResourceRef) -> None:
        """
        Remove an object without recording a call.
        """

        self._objects.pop(_key(ref), None)

    def mutations(self) -> list[StoreCall]:
        """
        Return the recorded create, update and delete calls, excluding status updates.
        """

        return [call for call in self.calls if call.verb in ("create", "update", "delete")]

    # ObjectStore

    def get(self, ctx: ReconcileContext, ref: ResourceRef) -> Manifest | None:
        ctx.check()
        obj = self._objects.get(_key(ref))
        return Manifest(copy.deepcopy(obj)) if obj is not None else None

    def list(
        self,
        ctx: ReconcileContext,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        selector: Selector | None = None,
    ) -> list[Manifest]:
        ctx.check()
        result = []
        for key in sorted(self._objects):
            obj = self._objects[key]
            ref = ResourceRef.from_manifest(obj)
            if ref.api_version != api_version or ref.kind != kind:
                continue
            if namespace is not None and ref.namespace != namespace:
                continue
            if selector is not None and not selector.matches(obj.get("metadata", {}).get("labels")):
                continue
            result.append(Manifest(copy.deepcopy(obj)))
        return result

    def create(self, ctx: ReconcileContext, manifest: Manifest) -> None:
        ctx.check()
        ref = ResourceRef.from_manifest(manifest)
        if _key(ref) in self._objects:
            raise TransientError(f"{ref} already exists")
        logger.trace("Creating {}", ref)
        self.calls.append(StoreCall("create", ref))
        self._objects[_key(ref)] = Manifest(copy.deepcopy(dict(manifest)))

    def update(self, ctx: ReconcileContext, manifest: Manifest) -> None:
        ctx.check()
        ref = ResourceRef.from_manifest(manifest)
        if _key(ref) not in self._objects:
            raise TransientError(f"{ref} does not exist")
        logger.trace("Updating {}", ref)
        self.calls.append(StoreCall("update", ref))
        status = self._objects[_key(ref)].get("status")
        obj = Manifest(copy.deepcopy(dict(manifest)))
        if status is not None:
            obj["status"] = status
        self._objects[_key(ref)] = obj

    def delete(self, ctx: ReconcileContext, ref: ResourceRef) -> bool:
        ctx.check()
        self.calls.append(StoreCall("delete", ref))
        return self._objects.pop(_key(ref), None) is not None

    def update_status(self, ctx: ReconcileContext, ref: ResourceRef, status: dict[str, Any]) -> None:
        ctx.check()
        if _key(ref) not in self._objects:
            raise TransientError(f"{ref} does not exist")
        self.calls.append(StoreCall("update_status", ref))
        self._objects[_key(ref)]["status"] = copy.deepcopy(status)


def _key(ref: ResourceRef) -> ResourceRef:
    # Objects are addressed independently of the API version they were written with.
    return ResourceRef(ref.group, "", ref.kind, ref.namespace, ref.name)
