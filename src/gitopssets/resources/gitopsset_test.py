from datetime import timedelta

import pytest

from gitopssets.resources import ObjectMetadata
from gitopssets.resources.gitopsset import (
    APIClientGenerator,
    Condition,
    GitOpsSet,
    GitOpsSetGenerator,
    GitOpsSetStatus,
    ListGenerator,
    configured_generator_kinds,
)
from gitopssets.resources.inventory import InventoryEntry, ResourceInventory
from gitopssets.tools.types import Manifest

MANIFEST = Manifest(
    {
        "apiVersion": "gitopssets.io/v1alpha1",
        "kind": "GitOpsSet",
        "metadata": {
            "name": "environments",
            "namespace": "team-a",
            "generation": 3,
            "creationTimestamp": "2024-01-01T00:00:00Z",
        },
        "spec": {
            "generators": [
                {"list": {"elements": [{"env": "dev"}, {"env": "prod"}]}},
                {
                    "matrix": {
                        "generators": [
                            {"cluster": {"selector": {"matchLabels": {"env": "dev"}}}},
                            {"apiClient": {"endpoint": "https://api.example.com/teams", "jsonPath": "{.teams}"}},
                        ]
                    }
                },
                {"gitRepository": {"repositoryRef": "repo", "directories": [{"path": "apps/*"}]}},
            ],
            "templates": [{"content": {"kind": "ConfigMap", "apiVersion": "v1"}}],
            "unknownField": True,
        },
        "status": {
            "observedGeneration": 2,
            "inventory": {"entries": [{"id": "team-a_dev_apps_Deployment", "v": "v1"}]},
        },
    }
)


def test__GitOpsSet__load__reads_generators_templates_and_status() -> None:
    gitopsset = GitOpsSet.load(MANIFEST)

    assert gitopsset.key == "team-a/environments"
    assert gitopsset.metadata.generation == 3

    list_generator, matrix_generator, git_generator = gitopsset.spec.generators
    assert list_generator.list == ListGenerator(elements=[{"env": "dev"}, {"env": "prod"}])
    assert configured_generator_kinds(list_generator) == ["list"]

    assert matrix_generator.matrix is not None
    cluster, api_client = matrix_generator.matrix.generators
    assert cluster.cluster is not None
    assert cluster.cluster.selector.matchLabels == {"env": "dev"}
    assert api_client.apiClient is not None
    assert api_client.apiClient.method == "GET"
    assert api_client.apiClient.poll_interval == timedelta(minutes=5)

    assert git_generator.gitRepository is not None
    assert git_generator.gitRepository.directories[0].path == "apps/*"
    assert git_generator.gitRepository.directories[0].exclude is False

    assert gitopsset.spec.templates[0].content == {"kind": "ConfigMap", "apiVersion": "v1"}
    assert gitopsset.status.inventory == ResourceInventory([InventoryEntry("team-a_dev_apps_Deployment", "v1")])


def test__GitOpsSet__load__rejects_other_kinds() -> None:
    with pytest.raises(ValueError):
        GitOpsSet.load(Manifest({**MANIFEST, "kind": "Kustomization"}))
    assert GitOpsSet.maybe_load(Manifest({"apiVersion": "v1", "kind": "ConfigMap"})) is None


def test__GitOpsSet__dump() -> None:
    gitopsset = GitOpsSet(metadata=ObjectMetadata(name="test"))
    manifest = gitopsset.dump()
    assert manifest["apiVersion"] == "gitopssets.io/v1alpha1"
    assert manifest["kind"] == "GitOpsSet"
    assert manifest["metadata"]["name"] == "test"
    assert gitopsset.namespace == "default"


def test__configured_generator_kinds__lists_every_field_that_is_set() -> None:
    spec = GitOpsSetGenerator(list=ListGenerator(), apiClient=APIClientGenerator(endpoint="https://example.com"))
    assert configured_generator_kinds(spec) == ["list", "apiClient"]
    assert configured_generator_kinds(GitOpsSetGenerator()) == []


def test__GitOpsSetStatus__set_condition__keeps_the_transition_time_if_the_status_is_unchanged() -> None:
    status = GitOpsSetStatus()
    status.set_condition(Condition("Ready", "True", "ReconciliationSucceeded", "1 resources created", "t1"))
    status.set_condition(Condition("Ready", "True", "ReconciliationSucceeded", "2 resources created", "t2"))

    assert len(status.conditions) == 1
    ready = status.get_condition("Ready")
    assert ready is not None
    assert ready.message == "2 resources created"
    assert ready.lastTransitionTime == "t1"

    status.set_condition(Condition("Ready", "False", "DataError", "boom", "t3"))
    ready = status.get_condition("Ready")
    assert ready is not None
    assert ready.lastTransitionTime == "t3"
