from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
import json
from typing import Any

from jsonpath_ng.jsonpath import JSONPath
from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as parse_jsonpath_ext
import requests

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, DataError, EndpointError, TransientError
from gitopssets.generator import NO_REQUEUE, Generator, GeneratorSpec
from gitopssets.generator.config import secret_data
from gitopssets.resources.gitopsset import APIClientGenerator as APIClientGeneratorSpec, HeadersReference
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store import ObjectStore
from gitopssets.tools.types import ParameterElement


@dataclass
class APIClientGenerator(Generator[APIClientGeneratorSpec], kind="apiClient", payload_type=APIClientGeneratorSpec):
    """
    Produces elements from the JSON response of an HTTP endpoint. Without further options the response must be an
    array of objects, each of which becomes an element. With `singleElement`, the response must be a single object.
    With `jsonPath`, the expression must match exactly one array of objects in the response.

    There is nothing to watch for changes of the endpoint, so the generator asks to be polled at its interval.
    """

    store: ObjectStore
    session: requests.Session
    timeout: float = 30
    """ Timeout for a request in seconds. """

    def generate_elements(
        self, ctx: ReconcileContext, payload: APIClientGeneratorSpec, namespace: str
    ) -> list[ParameterElement]:
        expression = parse_jsonpath(payload.jsonPath) if payload.jsonPath else None

        method = payload.method
        headers: dict[str, str] = {}
        data: str | None = None
        if payload.body is not None:
            method = "POST"
            headers["Content-Type"] = "application/json"
            data = json.dumps(payload.body)
        if payload.headersRef is not None:
            headers.update(self._load_headers(ctx, payload.headersRef, namespace))

        ctx.log.info("Generating elements from {} {}", method, payload.endpoint)
        try:
            response = self.session.request(
                method, payload.endpoint, data=data, headers=headers, timeout=ctx.timeout(self.timeout)
            )
        except requests.RequestException as exc:
            raise TransientError(f"failed to fetch endpoint {payload.endpoint}: {exc}") from exc

        if response.status_code >= 400:
            ctx.log.info("Endpoint {} responded with status {}", payload.endpoint, response.status_code)
            raise EndpointError(payload.endpoint, response.status_code, response.text)

        try:
            body = response.json()
        except ValueError as exc:
            raise DataError(f"failed to unmarshal JSON response from endpoint {payload.endpoint}") from exc

        if expression is not None:
            return elements_from_jsonpath(body, expression, payload.jsonPath or "", payload.endpoint)
        if payload.singleElement:
            if not isinstance(body, Mapping):
                raise DataError(f"expected a JSON object in the response from endpoint {payload.endpoint}")
            return [ParameterElement(dict(body))]
        if not isinstance(body, list) or not all(isinstance(item, Mapping) for item in body):
            raise DataError(f"expected a JSON array of objects in the response from endpoint {payload.endpoint}")
        return [ParameterElement(dict(item)) for item in body]

    def interval(self, spec: GeneratorSpec) -> timedelta | None:
        payload = self.payload(spec)
        if payload is None:
            return NO_REQUEUE
        try:
            return payload.poll_interval
        except ValueError as exc:
            raise ConfigurationError(f"invalid apiClient interval {payload.interval!r}: {exc}") from exc

    def _load_headers(self, ctx: ReconcileContext, ref: HeadersReference, namespace: str) -> dict[str, str]:
        if ref.kind not in ("ConfigMap", "Secret"):
            raise ConfigurationError(f"headersRef must refer to a ConfigMap or Secret, got {ref.kind!r} {ref.name!r}")

        obj_ref = ResourceRef("", "v1", ref.kind, namespace, ref.name)
        obj = self.store.get(ctx, obj_ref)
        if obj is None:
            raise TransientError(f"failed to load {obj_ref} for request headers: not found")

        if ref.kind == "Secret":
            return {key: value.decode("utf-8", errors="replace") for key, value in secret_data(obj).items()}
        return {key: str(value) for key, value in (obj.get("data") or {}).items()}


def parse_jsonpath(expression: str) -> JSONPath:
    """
    Parse a JSONPath expression. Expressions in the Kubernetes style (`{.items}`) are accepted as well.

    Raises:
        ConfigurationError: If the expression is invalid.
    """

    text = expression.strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1].strip()
    if text.startswith("."):
        text = "$" + text

    try:
        return parse_jsonpath_ext(text)
    except JSONPathError as exc:
        raise ConfigurationError(f"failed to parse JSONPath {expression!r}: {exc}") from exc


def elements_from_jsonpath(body: Any, expression: JSONPath, source: str, endpoint: str) -> list[ParameterElement]:
    """
    Evaluate the *expression* on the *body*. The expression must match exactly one value, which must be an array of
    objects.

    Raises:
        DataError: If the expression matches zero or several values, or a value that is not an array of objects.
    """

    matches = expression.find(body)
    if len(matches) != 1:
        raise DataError(f"{len(matches)} results found with expression {source} accessing endpoint {endpoint}")

    value = matches[0].value
    if not isinstance(value, list):
        raise DataError(
            f"failed to parse response: JSONPath {source} did not generate suitable array accessing endpoint {endpoint}"
        )
    if not all(isinstance(item, Mapping) for item in value):
        raise DataError(
            f"failed to parse response: JSONPath {source} did not generate suitable values accessing endpoint "
            f"{endpoint}"
        )
    return [ParameterElement(dict(item)) for item in value]
