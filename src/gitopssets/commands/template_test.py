from collections.abc import Iterator
from pathlib import Path
import sys
from textwrap import dedent

from loguru import logger
import pytest
from typer.testing import CliRunner
import yaml

from gitopssets.commands import app

GITOPSSET = dedent(
    """
    apiVersion: gitopssets.io/v1alpha1
    kind: GitOpsSet
    metadata:
      name: environments
      namespace: team-a
    spec:
      generators:
        - config:
            kind: ConfigMap
            name: environments
        - list:
            elements:
              - region: eu
              - region: us
      templates:
        - content:
            apiVersion: v1
            kind: ConfigMap
            metadata:
              name: "{{ .env }}-{{ .region }}"
            data:
              owner: "{{ .owner }}"
    ---
    apiVersion: v1
    kind: Namespace
    metadata:
      name: ignored
    """
)

OBJECTS = dedent(
    """
    apiVersion: v1
    kind: ConfigMap
    metadata:
      name: environments
      namespace: team-a
    data:
      env: dev
      owner: platform
    """
)


@pytest.fixture(autouse=True)
def restore_logger() -> Iterator[None]:
    yield
    logger.remove()
    logger.add(sys.stderr)


def invoke(tmp_path: Path, *args: str) -> tuple[int, str]:
    result = CliRunner().invoke(app, ["--log-level", "critical", "--config", str(tmp_path / "gitopssets.yaml"), *args])
    return result.exit_code, result.stdout


def test__template__renders_gitopssets_with_local_objects(tmp_path: Path) -> None:
    (tmp_path / "gitopssets.yaml").write_text("empty_generators: single\n")
    (tmp_path / "gitopsset.yaml").write_text(GITOPSSET)
    (tmp_path / "objects.yaml").write_text(OBJECTS)

    exit_code, output = invoke(
        tmp_path, "template", str(tmp_path / "gitopsset.yaml"), "--objects", str(tmp_path / "objects.yaml")
    )

    assert exit_code == 0, output
    resources = [doc for doc in yaml.safe_load_all(output) if doc]
    assert [resource["metadata"]["name"] for resource in resources] == ["dev-eu", "dev-us"]
    assert resources[0] == {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "dev-eu", "namespace": "team-a"},
        "data": {"owner": "platform"},
    }


def test__template__fails_if_a_generator_fails(tmp_path: Path) -> None:
    (tmp_path / "gitopssets.yaml").write_text("")
    (tmp_path / "gitopsset.yaml").write_text(GITOPSSET)

    exit_code, output = invoke(tmp_path, "template", str(tmp_path / "gitopsset.yaml"))

    assert exit_code == 1
    assert "---" not in output


def test__crds__prints_the_custom_resource_definition(tmp_path: Path) -> None:
    (tmp_path / "gitopssets.yaml").write_text("")

    exit_code, output = invoke(tmp_path, "crds")

    assert exit_code == 0
    (crd,) = [doc for doc in yaml.safe_load_all(output) if doc]
    assert crd["kind"] == "CustomResourceDefinition"
    assert crd["metadata"]["name"] == "gitopssets.gitopssets.io"
