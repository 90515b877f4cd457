import base64
import binascii
from dataclasses import dataclass
from typing import Any

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, DataError, TransientError
from gitopssets.generator import Generator
from gitopssets.resources.gitopsset import ConfigGenerator as ConfigGeneratorSpec
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store import ObjectStore
from gitopssets.tools.selectors import parse_label_selector
from gitopssets.tools.types import Manifest, ParameterElement

CONFIG_KINDS = ("ConfigMap", "Secret")


@dataclass
class ConfigGenerator(Generator[ConfigGeneratorSpec], kind="config", payload_type=ConfigGeneratorSpec):
    """
    Produces one element per ConfigMap or Secret in the GitOpsSet's namespace: the object referenced by name (if any)
    followed by all objects matching the selector. ConfigMap data is used as-is, Secret data is decoded to `bytes`.
    """

    store: ObjectStore

    def generate_elements(
        self, ctx: ReconcileContext, payload: ConfigGeneratorSpec, namespace: str
    ) -> list[ParameterElement]:
        if not payload.name and payload.selector is None:
            raise ConfigurationError("config generator requires a name or a selector")

        selector = parse_label_selector(payload.selector)

        if payload.kind not in CONFIG_KINDS:
            raise ConfigurationError(f"unknown config kind {payload.kind!r} for {payload.name!r}")

        objects: list[Manifest] = []
        if payload.name:
            ref = ResourceRef("", "v1", payload.kind, namespace, payload.name)
            obj = self.store.get(ctx, ref)
            if obj is None:
                raise TransientError(f"{ref} not found")
            objects.append(obj)

        objects.extend(self.store.list(ctx, "v1", payload.kind, namespace=namespace, selector=selector))

        ctx.log.debug("Config generator found {} {}(s) in namespace '{}'", len(objects), payload.kind, namespace)
        if payload.kind == "Secret":
            return [ParameterElement(secret_data(obj)) for obj in objects]
        return [ParameterElement(dict(obj.get("data") or {})) for obj in objects]


def secret_data(secret: Manifest) -> dict[str, Any]:
    """
    Decode the base64 encoded `data` of a Secret to bytes. Keys in `stringData` (only present on manifests that were
    not read back from the API server) are encoded as UTF-8.

    Raises:
        DataError: If a value is not valid base64.
    """

    result: dict[str, Any] = {}
    for key, value in (secret.get("data") or {}).items():
        try:
            result[key] = base64.b64decode(value or "", validate=True)
        except (binascii.Error, TypeError) as exc:
            name = (secret.get("metadata") or {}).get("name")
            raise DataError(f"Secret {name!r} key {key!r} is not valid base64: {exc}") from exc
    for key, value in (secret.get("stringData") or {}).items():
        result[key] = str(value).encode()
    return result
