from collections.abc import Mapping
from dataclasses import dataclass
import fnmatch
import glob
import os
from pathlib import Path

import yaml

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, DataError, TransientError
from gitopssets.generator import Generator
from gitopssets.resources.gitopsset import (
    GitRepositoryGenerator as GitRepositoryGeneratorSpec,
    GitRepositoryGeneratorDirectoryItem,
    GitRepositoryGeneratorFileItem,
)
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store import ObjectStore
from gitopssets.tools.archive import ArchiveFetcher
from gitopssets.tools.fs import scratch_directory, secure_join
from gitopssets.tools.types import ParameterElement

GITREPOSITORY_GROUP = "source.toolkit.fluxcd.io"
GITREPOSITORY_VERSION = "v1beta2"


@dataclass
class GitRepositoryGenerator(
    Generator[GitRepositoryGeneratorSpec], kind="gitRepository", payload_type=GitRepositoryGeneratorSpec
):
    """
    Produces elements from the latest artifact of a Flux `GitRepository`. The artifact is downloaded and extracted
    into a scratch directory that is removed again once the elements are produced.

    In file mode, every listed file is parsed as YAML (or JSON) and becomes one element. In directory mode, every path
    matched by the rules becomes an element with the keys `Directory` and `Base`.
    """

    store: ObjectStore
    fetcher: ArchiveFetcher
    scratch_dir: Path | None = None
    """ The directory to create scratch directories in. Defaults to the system's temporary directory. """

    def generate_elements(
        self, ctx: ReconcileContext, payload: GitRepositoryGeneratorSpec, namespace: str
    ) -> list[ParameterElement]:
        if payload.files and payload.directories:
            raise ConfigurationError("only one of files and directories can be set on a gitRepository generator")
        if not payload.files and not payload.directories:
            return []

        url, checksum = self._get_artifact(ctx, payload.repositoryRef, namespace)

        with scratch_directory(prefix="gitopssets-repo-", parent=self.scratch_dir) as directory:
            self.fetcher.fetch(ctx, url, checksum, directory)
            if payload.files:
                elements = generate_from_files(directory, payload.files)
            else:
                elements = generate_from_directories(directory, payload.directories)

        ctx.log.debug("GitRepository generator produced {} element(s) from {}", len(elements), url)
        return elements

    def _get_artifact(self, ctx: ReconcileContext, name: str, namespace: str) -> tuple[str, str]:
        ref = ResourceRef(GITREPOSITORY_GROUP, GITREPOSITORY_VERSION, "GitRepository", namespace, name)
        repository = self.store.get(ctx, ref)
        if repository is None:
            raise TransientError(f"{ref} not found")

        artifact = (repository.get("status") or {}).get("artifact")
        if not artifact or not artifact.get("url"):
            raise TransientError(f"{ref} does not have an artifact")

        if artifact.get("digest"):
            checksum = artifact["digest"]
        elif artifact.get("checksum"):
            checksum = f"sha256:{artifact['checksum']}"
        else:
            raise TransientError(f"artifact of {ref} does not have a checksum")

        return artifact["url"], checksum


def generate_from_files(root: Path, files: list[GitRepositoryGeneratorFileItem]) -> list[ParameterElement]:
    """
    Parse each file relative to *root* into an element.

    Raises:
        PathTraversalError: If a path points outside of *root*.
        DataError: If a file can not be read or does not contain a mapping.
    """

    elements = []
    for item in files:
        path = secure_join(root, item.path)
        try:
            content = yaml.safe_load(path.read_text())
        except OSError as exc:
            raise DataError(f"failed to read from archive file {item.path!r}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise DataError(f"failed to parse archive file {item.path!r}: {exc}") from exc

        if content is None:
            content = {}
        if not isinstance(content, Mapping):
            raise DataError(f"failed to parse archive file {item.path!r}: expected a mapping")
        elements.append(ParameterElement(dict(content)))

    return elements


def _match_segments(path: str, pattern: str) -> bool:
    parts, pattern_parts = path.split("/"), pattern.split("/")
    return len(parts) == len(pattern_parts) and all(map(fnmatch.fnmatchcase, parts, pattern_parts))


def generate_from_directories(
    root: Path, rules: list[GitRepositoryGeneratorDirectoryItem]
) -> list[ParameterElement]:
    """
    Collect the paths below *root* that match the include rules (in rule order, each rule's matches sorted) and drop
    every path that matches an exclude rule. Wildcards match hidden entries too, and never match across a `/`, so
    an exclusion only applies to paths with the same number of segments.

    Raises:
        PathTraversalError: If a pattern points outside of *root*.
    """

    root = root.resolve()
    exclusions = [rule.path.strip("/") for rule in rules if rule.exclude]

    paths: list[str] = []
    for rule in rules:
        if rule.exclude:
            continue
        pattern = secure_join(root, rule.path)
        for match in sorted(glob.glob(glob.escape(str(root)) + str(pattern)[len(str(root)) :], include_hidden=True)):
            relpath = Path(os.path.relpath(match, root)).as_posix()
            if relpath not in paths:
                paths.append(relpath)

    return [
        ParameterElement({"Directory": f"./{path}", "Base": path.rsplit("/", 1)[-1]})
        for path in paths
        if not any(_match_segments(path, exclusion) for exclusion in exclusions)
    ]
