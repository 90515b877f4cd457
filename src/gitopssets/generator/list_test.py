import pytest

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError
from gitopssets.generator.list import ListGenerator
from gitopssets.resources.gitopsset import GitOpsSetGenerator, ListGenerator as ListGeneratorSpec


def test__ListGenerator__generate__produces_one_element_per_entry() -> None:
    elements = [
        {"env": "dev", "externalIP": "192.168.50.50"},
        {"env": "production", "externalIP": "192.168.100.20"},
        {"env": "staging", "externalIP": "192.168.150.30", "tags": ["a", "b"]},
    ]
    spec = GitOpsSetGenerator(list=ListGeneratorSpec(elements=elements))

    result = ListGenerator().generate(ReconcileContext(), spec, "default")

    assert result == elements
    result[2]["tags"].append("c")
    assert elements[2]["tags"] == ["a", "b"]


def test__ListGenerator__generate__rejects_entries_that_are_not_objects() -> None:
    spec = GitOpsSetGenerator(list=ListGeneratorSpec(elements=[{"env": "dev"}, "prod"]))
    with pytest.raises(ConfigurationError, match="list element 1"):
        ListGenerator().generate(ReconcileContext(), spec, "default")
