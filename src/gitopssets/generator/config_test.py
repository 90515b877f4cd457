import base64
from typing import Any

import pytest

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, TransientError
from gitopssets.generator.config import ConfigGenerator
from gitopssets.resources import LabelSelector
from gitopssets.resources.gitopsset import ConfigGenerator as ConfigGeneratorSpec, GitOpsSetGenerator
from gitopssets.store.memory import InMemoryObjectStore


def config_map(name: str, namespace: str, data: dict[str, str], labels: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
        "data": data,
    }


def secret(name: str, namespace: str, data: dict[str, str], labels: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
        "data": {key: base64.b64encode(value.encode()).decode() for key, value in data.items()},
    }


STORE = InMemoryObjectStore(
    [
        config_map("dev", "team-a", {"env": "dev", "team": "engineering dev"}),
        config_map("prod", "team-a", {"env": "prod"}, labels={"generate": "yes"}),
        config_map("staging", "team-a", {"env": "staging"}, labels={"generate": "yes"}),
        config_map("other", "team-b", {"env": "other"}, labels={"generate": "yes"}),
        secret("creds", "team-a", {"password": "hunter2"}),
    ]
)


def generate(spec: ConfigGeneratorSpec, namespace: str = "team-a") -> list[Any]:
    return ConfigGenerator(STORE).generate(ReconcileContext(), GitOpsSetGenerator(config=spec), namespace)


def test__ConfigGenerator__generate__from_a_named_config_map() -> None:
    assert generate(ConfigGeneratorSpec(kind="ConfigMap", name="dev")) == [{"env": "dev", "team": "engineering dev"}]


def test__ConfigGenerator__generate__from_config_maps_matching_a_selector_in_the_namespace() -> None:
    spec = ConfigGeneratorSpec(kind="ConfigMap", selector=LabelSelector(matchLabels={"generate": "yes"}))
    assert generate(spec) == [{"env": "prod"}, {"env": "staging"}]


def test__ConfigGenerator__generate__from_a_name_and_a_selector() -> None:
    spec = ConfigGeneratorSpec(kind="ConfigMap", name="dev", selector=LabelSelector(matchLabels={"generate": "yes"}))
    assert [element["env"] for element in generate(spec)] == ["dev", "prod", "staging"]


def test__ConfigGenerator__generate__empty_selector_matches_every_object() -> None:
    spec = ConfigGeneratorSpec(kind="ConfigMap", selector=LabelSelector())
    assert [element["env"] for element in generate(spec)] == ["dev", "prod", "staging"]


def test__ConfigGenerator__generate__decodes_secret_data_to_bytes() -> None:
    assert generate(ConfigGeneratorSpec(kind="Secret", name="creds")) == [{"password": b"hunter2"}]


def test__ConfigGenerator__generate__requires_a_name_or_a_selector() -> None:
    with pytest.raises(ConfigurationError, match="name or a selector"):
        generate(ConfigGeneratorSpec(kind="ConfigMap"))


def test__ConfigGenerator__generate__rejects_unknown_kinds() -> None:
    with pytest.raises(ConfigurationError, match="'Deployment'.*'web'"):
        generate(ConfigGeneratorSpec(kind="Deployment", name="web"))


def test__ConfigGenerator__generate__fails_if_the_named_object_does_not_exist() -> None:
    with pytest.raises(TransientError, match="not found"):
        generate(ConfigGeneratorSpec(kind="ConfigMap", name="missing"))
