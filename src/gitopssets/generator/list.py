import copy
from collections.abc import Mapping
from dataclasses import dataclass

from gitopssets.context import ReconcileContext
from gitopssets.errors import ConfigurationError
from gitopssets.generator import Generator
from gitopssets.resources.gitopsset import ListGenerator as ListGeneratorSpec
from gitopssets.tools.types import ParameterElement


@dataclass
class ListGenerator(Generator[ListGeneratorSpec], kind="list", payload_type=ListGeneratorSpec):
    """
    Produces one element per entry of the list. Every entry must be an object.
    """

    def generate_elements(
        self, ctx: ReconcileContext, payload: ListGeneratorSpec, namespace: str
    ) -> list[ParameterElement]:
        elements = []
        for idx, item in enumerate(payload.elements):
            if not isinstance(item, Mapping):
                raise ConfigurationError(f"list element {idx} must be an object, got {type(item).__name__}")
            elements.append(ParameterElement(copy.deepcopy(dict(item))))

        ctx.log.debug("List generator produced {} element(s)", len(elements))
        return elements
