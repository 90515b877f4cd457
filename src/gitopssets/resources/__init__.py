"""
This package contains the Kubernetes resources that the GitOpsSet controller reads and writes.
"""

from abc import ABC
from dataclasses import dataclass
from typing import ClassVar, cast
from typing_extensions import Self
from databind.core import ExtraKeys
from databind.json import load as deser, dump as ser

from gitopssets.tools.types import Manifest

GROUP = "gitopssets.io"
API_VERSION = f"{GROUP}/v1alpha1"


class KubernetesResource(ABC):
    """
    Base class for typed Kubernetes resources. Subclasses declare their `apiVersion` and `kind` as class arguments.
    """

    API_VERSION: ClassVar[str]
    """ The API version of the resource, e.g. `gitopssets.io/v1alpha1`. """

    KIND: ClassVar[str]
    """
    The kind identifier of the resource. If not set, this will default to the class name.
    """

    def __init_subclass__(cls, api_version: str, kind: str | None = None) -> None:
        cls.API_VERSION = api_version
        if kind is not None or "KIND" not in vars(cls):
            cls.KIND = kind or cls.__name__

    @classmethod
    def load(cls, manifest: Manifest) -> "Self":
        """
        Load the resource from a manifest. Fields that the resource does not know about (such as server-populated
        metadata) are ignored.

        Raises:
            ValueError: If the `apiVersion` or `kind` of the manifest does not match the resource.
        """

        if not cls.matches(manifest):
            raise ValueError(
                f"Expected {cls.API_VERSION}/{cls.KIND}, got {manifest.get('apiVersion')}/{manifest.get('kind')}"
            )

        manifest = Manifest(dict(manifest))
        manifest.pop("apiVersion")
        manifest.pop("kind")

        return cast(Self, deser(manifest, cls, settings=[ExtraKeys()]))

    @classmethod
    def maybe_load(cls, manifest: Manifest) -> "Self | None":
        """
        Load the manifest if it matches the resource's `apiVersion` and `kind`, otherwise return `None`.
        """

        if cls.matches(manifest):
            return cls.load(manifest)
        return None

    @classmethod
    def matches(cls, manifest: Manifest) -> bool:
        """
        Check if the manifest has the `apiVersion` and `kind` of this resource.
        """

        return manifest.get("apiVersion") == cls.API_VERSION and manifest.get("kind") == cls.KIND

    def dump(self) -> Manifest:
        """
        Dump the resource to a manifest.
        """

        manifest = cast(Manifest, ser(self, type(self)))
        manifest["apiVersion"] = self.API_VERSION
        manifest["kind"] = self.KIND
        return Manifest(manifest)


@dataclass
class ObjectMetadata:
    """
    Kubernetes object metadata.
    """

    name: str
    namespace: str | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    generation: int | None = None
    uid: str | None = None


@dataclass
class LabelSelectorRequirement:
    """
    A selector requirement, e.g. `{"key": "env", "operator": "In", "values": ["dev", "prod"]}`.
    """

    key: str
    operator: str
    values: list[str] | None = None


@dataclass
class LabelSelector:
    """
    A Kubernetes label selector. The requirements of `matchLabels` and `matchExpressions` are ANDed. An empty label
    selector matches all objects.
    """

    matchLabels: dict[str, str] | None = None
    matchExpressions: list[LabelSelectorRequirement] | None = None
