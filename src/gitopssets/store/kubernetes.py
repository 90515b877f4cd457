from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes.client.api_client import ApiClient
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, NotFoundError, ResourceNotFoundError
from kubernetes.dynamic.resource import Resource
from loguru import logger
import urllib3.exceptions

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, TransientError
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store import ObjectStore
from gitopssets.tools.selectors import Selector
from gitopssets.tools.types import Manifest

T = TypeVar("T")


class KubernetesObjectStore(ObjectStore):
    """
    An object store backed by the Kubernetes API, using the dynamic client so that any resource kind can be read and
    written. Updates use server-side apply with a dedicated field manager.
    """

    def __init__(self, client: ApiClient, field_manager: str, request_timeout: float = 30) -> None:
        """
        Args:
            client: The Kubernetes API client.
            field_manager: The field manager name to use for server-side apply.
            request_timeout: The maximum time to wait for a single API request, in seconds.
        """

        self._client = DynamicClient(client)
        self._field_manager = field_manager
        self._request_timeout = request_timeout

    def _resource(self, api_version: str, kind: str) -> Resource:
        try:
            return self._client.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError:
            raise ConfigurationError(f"resource kind {kind!r} ({api_version}) is not known to the cluster")
        except (DynamicApiError, ApiException, urllib3.exceptions.HTTPError) as exc:
            raise TransientError(f"failed to discover resource kind {kind!r} ({api_version}): {exc}") from exc

    def _call(self, ctx: ReconcileContext, description: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        kwargs["_request_timeout"] = ctx.timeout(self._request_timeout)
        try:
            return func(*args, **kwargs)
        except NotFoundError:
            raise
        except (DynamicApiError, ApiException, urllib3.exceptions.HTTPError) as exc:
            raise TransientError(f"failed to {description}: {exc}") from exc

    # ObjectStore

    def get(self, ctx: ReconcileContext, ref: ResourceRef) -> Manifest | None:
        resource = self._resource(ref.api_version, ref.kind)
        try:
            result = self._call(
                ctx, f"get {ref}", self._client.get, resource, name=ref.name, namespace=ref.namespace or None
            )
        except NotFoundError:
            return None
        return Manifest(result.to_dict())

    def list(
        self,
        ctx: ReconcileContext,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        selector: Selector | None = None,
    ) -> list[Manifest]:
        if selector is not None and selector.nothing:
            return []

        resource = self._resource(api_version, kind)
        kwargs: dict[str, Any] = {}
        if selector is not None and selector.requirements:
            kwargs["label_selector"] = str(selector)

        logger.trace("Listing {} in namespace {} (selector: {})", kind, namespace or "<all>", kwargs)
        try:
            result = self._call(ctx, f"list {kind}", self._client.get, resource, namespace=namespace, **kwargs)
        except NotFoundError as exc:
            raise TransientError(f"failed to list {kind}: {exc}") from exc
        return [Manifest(item) for item in result.to_dict().get("items", [])]

    def create(self, ctx: ReconcileContext, manifest: Manifest) -> None:
        ref = ResourceRef.from_manifest(manifest)
        resource = self._resource(ref.api_version, ref.kind)
        try:
            self._call(
                ctx,
                f"create {ref}",
                self._client.create,
                resource,
                body=manifest,
                namespace=ref.namespace or None,
                field_manager=self._field_manager,
            )
        except NotFoundError as exc:
            raise TransientError(f"failed to create {ref}: {exc}") from exc

    def update(self, ctx: ReconcileContext, manifest: Manifest) -> None:
        ref = ResourceRef.from_manifest(manifest)
        resource = self._resource(ref.api_version, ref.kind)
        try:
            self._call(
                ctx,
                f"apply {ref}",
                self._client.server_side_apply,
                resource,
                body=manifest,
                name=ref.name,
                namespace=ref.namespace or None,
                field_manager=self._field_manager,
                force_conflicts=True,
            )
        except NotFoundError as exc:
            raise TransientError(f"failed to apply {ref}: {exc}") from exc

    def delete(self, ctx: ReconcileContext, ref: ResourceRef) -> bool:
        resource = self._resource(ref.api_version, ref.kind)
        try:
            self._call(
                ctx, f"delete {ref}", self._client.delete, resource, name=ref.name, namespace=ref.namespace or None
            )
        except NotFoundError:
            return False
        return True

    def update_status(self, ctx: ReconcileContext, ref: ResourceRef, status: dict[str, Any]) -> None:
        resource = self._resource(ref.api_version, ref.kind)
        try:
            self._call(
                ctx,
                f"update status of {ref}",
                self._client.patch,
                resource.subresources["status"],
                body={"status": status},
                name=ref.name,
                namespace=ref.namespace or None,
                content_type="application/merge-patch+json",
            )
        except NotFoundError as exc:
            raise TransientError(f"failed to update status of {ref}: {exc}") from exc
