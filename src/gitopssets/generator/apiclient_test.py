import base64
from datetime import timedelta
import json
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, DataError, EndpointError, TransientError
from gitopssets.generator.apiclient import APIClientGenerator, parse_jsonpath
from gitopssets.resources.gitopsset import (
    APIClientGenerator as APIClientGeneratorSpec,
    GitOpsSetGenerator,
    HeadersReference,
)
from gitopssets.store.memory import InMemoryObjectStore

ENDPOINT = "https://api.example.com/environments"


def new_generator(body: Any = None, status_code: int = 200, text: str | None = None) -> APIClientGenerator:
    response = MagicMock()
    response.status_code = status_code
    response.text = text if text is not None else json.dumps(body)
    if text is None:
        response.json.return_value = body
    else:
        response.json.side_effect = json.JSONDecodeError("Expecting value", text, 0)

    session = MagicMock()
    session.request.return_value = response

    store = InMemoryObjectStore(
        [
            {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": {"name": "api-credentials", "namespace": "team-a"},
                "data": {"Authorization": base64.b64encode(b"Bearer s3cret").decode()},
            },
            {
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "metadata": {"name": "api-headers", "namespace": "team-a"},
                "data": {"X-Team": "team-a"},
            },
        ]
    )
    return APIClientGenerator(store, session, timeout=10)


def generate(generator: APIClientGenerator, spec: APIClientGeneratorSpec) -> list[Any]:
    return generator.generate(ReconcileContext(), GitOpsSetGenerator(apiClient=spec), "team-a")


def test__APIClientGenerator__generate__from_an_array_of_objects() -> None:
    generator = new_generator([{"env": "dev"}, {"env": "prod"}])

    assert generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT)) == [{"env": "dev"}, {"env": "prod"}]

    call = generator.session.request.call_args  # type: ignore[attr-defined]
    assert call.args == ("GET", ENDPOINT)
    assert call.kwargs["data"] is None
    assert call.kwargs["headers"] == {}
    assert call.kwargs["timeout"] == 10


def test__APIClientGenerator__generate__posts_the_body_as_json() -> None:
    generator = new_generator([{"env": "dev"}])
    generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT, body={"team": "a"}))

    call = generator.session.request.call_args  # type: ignore[attr-defined]
    assert call.args == ("POST", ENDPOINT)
    assert json.loads(call.kwargs["data"]) == {"team": "a"}
    assert call.kwargs["headers"] == {"Content-Type": "application/json"}


@pytest.mark.parametrize(
    ("ref", "expected"),
    [
        (HeadersReference("Secret", "api-credentials"), {"Authorization": "Bearer s3cret"}),
        (HeadersReference("ConfigMap", "api-headers"), {"X-Team": "team-a"}),
    ],
)
def test__APIClientGenerator__generate__sets_headers_from_a_reference(
    ref: HeadersReference, expected: dict[str, str]
) -> None:
    generator = new_generator([])
    generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT, headersRef=ref))
    assert generator.session.request.call_args.kwargs["headers"] == expected  # type: ignore[attr-defined]


def test__APIClientGenerator__generate__rejects_other_header_reference_kinds() -> None:
    generator = new_generator([])
    with pytest.raises(ConfigurationError, match="ConfigMap or Secret"):
        generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT, headersRef=HeadersReference("Pod", "web")))
    generator.session.request.assert_not_called()  # type: ignore[attr-defined]


def test__APIClientGenerator__generate__single_element() -> None:
    generator = new_generator({"env": "dev", "replicas": 2})
    spec = APIClientGeneratorSpec(endpoint=ENDPOINT, singleElement=True)
    assert generate(generator, spec) == [{"env": "dev", "replicas": 2}]


@pytest.mark.parametrize("expression", ["{.environments}", "$.environments", ".environments"])
def test__APIClientGenerator__generate__with_json_path(expression: str) -> None:
    generator = new_generator({"environments": [{"env": "dev"}, {"env": "prod"}], "total": 2})
    spec = APIClientGeneratorSpec(endpoint=ENDPOINT, jsonPath=expression)
    assert generate(generator, spec) == [{"env": "dev"}, {"env": "prod"}]


@pytest.mark.parametrize(
    ("body", "expression"),
    [
        ({"items": []}, "{.environments}"),
        ({"environments": [{"env": "dev"}, {"env": "prod"}]}, "{.environments[*]}"),
        ({"environments": "dev"}, "{.environments}"),
        ({"environments": ["dev", "prod"]}, "{.environments}"),
    ],
)
def test__APIClientGenerator__generate__json_path_must_match_one_array_of_objects(body: Any, expression: str) -> None:
    generator = new_generator(body)
    with pytest.raises(DataError) as excinfo:
        generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT, jsonPath=expression))
    assert expression in str(excinfo.value)
    assert ENDPOINT in str(excinfo.value)


def test__APIClientGenerator__generate__raises_for_error_responses() -> None:
    generator = new_generator({"error": "unauthorized"}, status_code=401)
    with pytest.raises(EndpointError) as excinfo:
        generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT))
    assert excinfo.value.status_code == 401
    assert str(excinfo.value).startswith(f"got 401 response from endpoint {ENDPOINT}")
    assert "unauthorized" in str(excinfo.value)


def test__APIClientGenerator__generate__wraps_connection_errors() -> None:
    generator = new_generator([])
    generator.session.request.side_effect = requests.ConnectionError("connection refused")  # type: ignore
    with pytest.raises(TransientError, match="connection refused"):
        generate(generator, APIClientGeneratorSpec(endpoint=ENDPOINT))


@pytest.mark.parametrize(
    ("body", "spec"),
    [
        ({"env": "dev"}, APIClientGeneratorSpec(endpoint=ENDPOINT)),
        ([{"env": "dev"}], APIClientGeneratorSpec(endpoint=ENDPOINT, singleElement=True)),
    ],
)
def test__APIClientGenerator__generate__rejects_unexpected_response_shapes(
    body: Any, spec: APIClientGeneratorSpec
) -> None:
    with pytest.raises(DataError):
        generate(new_generator(body), spec)


def test__APIClientGenerator__generate__rejects_invalid_json() -> None:
    with pytest.raises(DataError, match="failed to unmarshal"):
        generate(new_generator(text="<html>"), APIClientGeneratorSpec(endpoint=ENDPOINT))


def test__APIClientGenerator__interval() -> None:
    generator = new_generator([])
    spec = APIClientGeneratorSpec(endpoint=ENDPOINT, interval="2m")
    assert generator.interval(GitOpsSetGenerator(apiClient=spec)) == timedelta(minutes=2)

    with pytest.raises(ConfigurationError):
        generator.interval(GitOpsSetGenerator(apiClient=APIClientGeneratorSpec(endpoint=ENDPOINT, interval="soon")))


def test__parse_jsonpath__rejects_invalid_expressions() -> None:
    with pytest.raises(ConfigurationError, match="failed to parse JSONPath"):
        parse_jsonpath("{.items[}")
