from dataclasses import dataclass, field
from datetime import timedelta

from gitopssets.combine import cartesian_product
from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError
from gitopssets.generator import NO_REQUEUE, Generator, GeneratorSpec
from gitopssets.resources.gitopsset import (
    GitOpsSetNestedGenerator,
    MatrixGenerator as MatrixGeneratorSpec,
    configured_generator_kinds,
)
from gitopssets.tools.types import ParameterElement


@dataclass
class MatrixGenerator(Generator[MatrixGeneratorSpec], kind="matrix", payload_type=MatrixGeneratorSpec):
    """
    Produces the cartesian product of the elements of its nested generators. The elements of each combination are
    merged, later generators winning on clashing keys.
    """

    generators: dict[str, Generator] = field(default_factory=dict)
    """ The generators that can be nested, keyed by their kind. """

    def generate_elements(
        self, ctx: ReconcileContext, payload: MatrixGeneratorSpec, namespace: str
    ) -> list[ParameterElement]:
        results = []
        for idx, nested in enumerate(payload.generators):
            generator = self._select(idx, nested)
            if generator is not None:
                results.append(generator.generate(ctx, nested, namespace))

        if not results:
            return []

        elements = cartesian_product(results)
        ctx.log.debug("Matrix generator produced {} element(s) from {} generator(s)", len(elements), len(results))
        return elements

    def interval(self, spec: GeneratorSpec) -> timedelta | None:
        payload = self.payload(spec)
        if payload is None:
            return NO_REQUEUE

        intervals = []
        for idx, nested in enumerate(payload.generators):
            generator = self._select(idx, nested)
            if generator is not None and (interval := generator.interval(nested)) is not None:
                intervals.append(interval)
        return min(intervals, default=NO_REQUEUE)

    def _select(self, idx: int, nested: GitOpsSetNestedGenerator) -> Generator | None:
        kinds = configured_generator_kinds(nested)
        if len(kinds) > 1:
            raise ConfigurationError(f"matrix generator {idx} sets more than one generator: {', '.join(kinds)}")
        if not kinds:
            return None
        if kinds[0] not in self.generators:
            raise ConfigurationError(f"generator {kinds[0]!r} can not be nested in a matrix generator")
        return self.generators[kinds[0]]
