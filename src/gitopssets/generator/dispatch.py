from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import requests

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError, EmptyOwningObjectError
from gitopssets.generator import Generator, GeneratorSpec
from gitopssets.resources.gitopsset import configured_generator_kinds
from gitopssets.store import ObjectStore
from gitopssets.tools.archive import ArchiveFetcher
from gitopssets.tools.types import ParameterElement


@dataclass
class DispatchingGenerator:
    """
    Dispatches a generator specification to the generator for the variant that it sets.
    """

    generators: dict[str, Generator] = field(default_factory=dict)
    """ Collection of generators to dispatch to based on the generator kind. """

    @staticmethod
    def default(
        *,
        store: ObjectStore,
        fetcher: ArchiveFetcher,
        session: requests.Session | None = None,
        scratch_dir: Path | None = None,
        http_timeout: float = 30,
    ) -> "DispatchingGenerator":
        """
        Create a new DispatchingGenerator with the default set of generators.

        Args:
            store: The object store that generators look up ConfigMaps, Secrets, GitRepositories and GitopsClusters
                   in.
            fetcher: Used to download the artifacts of GitRepositories.
            session: The HTTP session used by the API client generator. Defaults to a new session.
            scratch_dir: The directory to extract GitRepository artifacts in. Defaults to the system's temporary
                         directory.
            http_timeout: Timeout for requests of the API client generator, in seconds.
        """

        from gitopssets.generator.apiclient import APIClientGenerator
        from gitopssets.generator.cluster import ClusterGenerator
        from gitopssets.generator.config import ConfigGenerator
        from gitopssets.generator.gitrepository import GitRepositoryGenerator
        from gitopssets.generator.list import ListGenerator
        from gitopssets.generator.matrix import MatrixGenerator

        nested: dict[str, Generator] = {
            "list": ListGenerator(),
            "config": ConfigGenerator(store),
            "gitRepository": GitRepositoryGenerator(store, fetcher, scratch_dir),
            "apiClient": APIClientGenerator(store, session or requests.Session(), http_timeout),
            "cluster": ClusterGenerator(store),
        }
        return DispatchingGenerator(generators={**nested, "matrix": MatrixGenerator(nested)})

    def select(self, spec: GeneratorSpec | None) -> Generator | None:
        """
        Return the generator for the variant that *spec* sets, or `None` if it sets no variant.

        Raises:
            EmptyOwningObjectError: If *spec* is `None`.
            ConfigurationError: If *spec* sets more than one variant, or one without a generator.
        """

        if spec is None:
            raise EmptyOwningObjectError()

        kinds = configured_generator_kinds(spec)
        if len(kinds) > 1:
            raise ConfigurationError(f"a generator must set exactly one of its fields, got: {', '.join(kinds)}")
        if not kinds:
            return None
        if kinds[0] not in self.generators:
            raise ConfigurationError(f"no generator found for kind: {kinds[0]}")
        return self.generators[kinds[0]]

    def generate(
        self, ctx: ReconcileContext, spec: GeneratorSpec | None, namespace: str
    ) -> list[ParameterElement] | None:
        """
        Produce the elements of *spec*, or `None` if it sets no variant and therefore does not take part in the
        combination of elements.
        """

        generator = self.select(spec)
        if generator is None:
            return None
        return generator.generate(ctx, spec, namespace)

    def interval(self, spec: GeneratorSpec) -> timedelta | None:
        generator = self.select(spec)
        if generator is None:
            return None
        return generator.interval(spec)
