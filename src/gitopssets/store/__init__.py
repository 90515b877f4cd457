"""
The object store is the controller's view of the cluster: a key/value store of Kubernetes objects that can be listed
with label selectors.
"""

from abc import ABC, abstractmethod
from typing import Any

from gitopssets.context import ReconcileContext
from gitopssets.resources.inventory import ResourceRef
from gitopssets.tools.selectors import Selector
from gitopssets.tools.types import Manifest


class ObjectStore(ABC):
    """
    Interface for reading and writing Kubernetes objects. Errors talking to the backend are raised as
    `TransientError`s.
    """

    @abstractmethod
    def get(self, ctx: ReconcileContext, ref: ResourceRef) -> Manifest | None:
        """Get an object, or `None` if it does not exist."""

    @abstractmethod
    def list(
        self,
        ctx: ReconcileContext,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        selector: Selector | None = None,
    ) -> list[Manifest]:
        """List objects of a kind, optionally restricted to a namespace and filtered by a label selector."""

    @abstractmethod
    def create(self, ctx: ReconcileContext, manifest: Manifest) -> None:
        """Create an object."""

    @abstractmethod
    def update(self, ctx: ReconcileContext, manifest: Manifest) -> None:
        """Update an existing object with the fields of the manifest."""

    @abstractmethod
    def delete(self, ctx: ReconcileContext, ref: ResourceRef) -> bool:
        """Delete an object. Returns `False` if the object did not exist."""

    @abstractmethod
    def update_status(self, ctx: ReconcileContext, ref: ResourceRef, status: dict[str, Any]) -> None:
        """Replace the status of an object."""
