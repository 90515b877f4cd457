from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError
from gitopssets.generator.dispatch import DispatchingGenerator
from gitopssets.generator.matrix import MatrixGenerator
from gitopssets.resources.gitopsset import (
    APIClientGenerator,
    GitOpsSetGenerator,
    GitOpsSetNestedGenerator,
    ListGenerator,
    MatrixGenerator as MatrixGeneratorSpec,
)
from gitopssets.store.memory import InMemoryObjectStore


def new_matrix() -> MatrixGenerator:
    dispatcher = DispatchingGenerator.default(store=InMemoryObjectStore(), fetcher=MagicMock(), session=MagicMock())
    matrix = dispatcher.generators["matrix"]
    assert isinstance(matrix, MatrixGenerator)
    return matrix


def generate(*generators: GitOpsSetNestedGenerator) -> list:
    spec = GitOpsSetGenerator(matrix=MatrixGeneratorSpec(generators=list(generators)))
    return new_matrix().generate(ReconcileContext(), spec, "default")


def nested_list(*elements: dict) -> GitOpsSetNestedGenerator:
    return GitOpsSetNestedGenerator(list=ListGenerator(elements=list(elements)))


def test__MatrixGenerator__generate__produces_the_cartesian_product() -> None:
    result = generate(
        nested_list({"env": "dev"}, {"env": "prod"}),
        nested_list({"team": "a"}, {"team": "b"}),
    )
    assert result == [
        {"env": "dev", "team": "a"},
        {"env": "dev", "team": "b"},
        {"env": "prod", "team": "a"},
        {"env": "prod", "team": "b"},
    ]


def test__MatrixGenerator__generate__later_generators_win_on_clashing_keys() -> None:
    result = generate(nested_list({"env": "dev", "replicas": 1}), nested_list({"replicas": 3}))
    assert result == [{"env": "dev", "replicas": 3}]


def test__MatrixGenerator__generate__skips_entries_without_a_generator() -> None:
    result = generate(nested_list({"env": "dev"}), GitOpsSetNestedGenerator())
    assert result == [{"env": "dev"}]


def test__MatrixGenerator__generate__is_empty_if_a_generator_is_empty() -> None:
    assert generate(nested_list({"env": "dev"}), nested_list()) == []


def test__MatrixGenerator__generate__is_empty_without_generators() -> None:
    assert generate() == []
    assert generate(GitOpsSetNestedGenerator()) == []


def test__MatrixGenerator__generate__rejects_entries_with_multiple_generators() -> None:
    nested = GitOpsSetNestedGenerator(list=ListGenerator(), apiClient=APIClientGenerator(endpoint="https://x"))
    with pytest.raises(ConfigurationError, match="matrix generator 1 sets more than one generator"):
        generate(nested_list({"env": "dev"}), nested)


def test__MatrixGenerator__interval__is_the_shortest_nested_interval() -> None:
    spec = GitOpsSetGenerator(
        matrix=MatrixGeneratorSpec(
            generators=[
                GitOpsSetNestedGenerator(apiClient=APIClientGenerator(endpoint="https://x", interval="10m")),
                GitOpsSetNestedGenerator(apiClient=APIClientGenerator(endpoint="https://y", interval="90s")),
                nested_list({"env": "dev"}),
            ]
        )
    )
    assert new_matrix().interval(spec) == timedelta(seconds=90)
    assert new_matrix().interval(GitOpsSetGenerator(matrix=MatrixGeneratorSpec([nested_list()]))) is None
