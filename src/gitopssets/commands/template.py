from dataclasses import dataclass
from pathlib import Path

from loguru import logger
from typer import Argument, Context, Exit, Option
import yaml

from gitopssets.config import ConfigFile
from gitopssets.controller import GitOpsSetController
from gitopssets.errors import GitOpsSetError
from gitopssets.resources.gitopsset import GitOpsSet
from gitopssets.store import ObjectStore
from gitopssets.store.kubernetes import KubernetesObjectStore
from gitopssets.store.memory import InMemoryObjectStore
from gitopssets.tools.types import Manifest, Manifests

from . import app, new_api_client


@dataclass
class ManifestsWithSource:
    """
    Represents a list of manifests loaded from a particular source file.
    """

    manifests: Manifests
    file: Path


@app.command()
def template(
    ctx: Context,
    paths: list[Path] = Argument(..., help="The YAML file(s) containing GitOpsSets to render. Can be a directory."),
    objects: list[Path] = Option(
        [],
        "--objects",
        help="YAML file(s) with the objects that generators look up, such as ConfigMaps, Secrets, GitRepositories "
        "and GitopsClusters. Ignored when rendering against a cluster.",
    ),
    cluster: bool = Option(False, help="Look up the objects that generators reference in the current cluster."),
    in_cluster: bool = Option(False, help="Use the in-cluster Kubernetes configuration. Implies --cluster."),
) -> None:
    """
    Render GitOpsSets into the resources they generate, without applying them.
    """

    config: ConfigFile = ctx.obj

    store: ObjectStore
    if cluster or in_cluster:
        store = KubernetesObjectStore(
            new_api_client(in_cluster), config.config.field_manager, config.config.http_timeout
        )
    else:
        store = InMemoryObjectStore(
            manifest for source in load_manifests(objects) for manifest in source.manifests if manifest
        )
        logger.debug("Seeded object store: {}", store)

    controller = GitOpsSetController.from_config(store, config.config)

    for source in load_manifests(paths):
        logger.info("Rendering GitOpsSets from {}", source.file)

        for manifest in source.manifests:
            gitopsset = GitOpsSet.maybe_load(manifest)
            if gitopsset is None:
                logger.warning(
                    "Skipping {}/{} in '{}', it is not a GitOpsSet.",
                    manifest.get("apiVersion"),
                    manifest.get("kind"),
                    source.file,
                )
                continue

            try:
                rendered = controller.render(controller.new_context(gitopsset), gitopsset)
            except GitOpsSetError as exc:
                logger.error("Failed to render GitOpsSet {} from '{}': {}", gitopsset.key, source.file, exc)
                raise Exit(1)

            for resource in rendered:
                print("---")
                print(yaml.safe_dump(resource))


def load_manifests(paths: list[Path]) -> list[ManifestsWithSource]:
    """
    Load all manifests from the given files and directories.
    """

    logger.trace("Loading manifests from paths: {}", paths)

    files = []
    for path in paths:
        if path.is_dir():
            for item in sorted(path.iterdir()):
                if item.suffix not in (".yaml", ".yml") or not item.is_file():
                    continue
                files.append(item)
        else:
            files.append(path)

    logger.trace("Files to load: {}", files)

    result = []
    for file in files:
        manifests = Manifests([Manifest(doc) for doc in yaml.safe_load_all(file.read_text()) if doc])
        result.append(ManifestsWithSource(manifests, file))

    return result
