"""
This package contains the generators that produce the parameter elements which GitOpsSet templates are rendered with.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, ClassVar, Generic, TypeVar

from gitopssets.context import ReconcileContext
from gitopssets.errors import EmptyOwningObjectError
from gitopssets.resources.gitopsset import GitOpsSetGenerator, GitOpsSetNestedGenerator
from gitopssets.tools.types import ParameterElement

T = TypeVar("T")

NO_REQUEUE: None = None
""" Returned by `Generator.interval()` when there is nothing to poll for. """

GeneratorSpec = GitOpsSetGenerator | GitOpsSetNestedGenerator


class Generator(ABC, Generic[T]):
    """
    Base class for generators. Every generator handles one variant of a `GitOpsSetGenerator`, identified by the name
    of the field that holds its payload.
    """

    kind: ClassVar[str]
    """ The name of the `GitOpsSetGenerator` field that this generator handles, e.g. `list`. """

    payload_type: ClassVar[type[Any]]

    def __init_subclass__(cls, kind: str, payload_type: type[T], **kwargs):
        cls.kind = kind
        cls.payload_type = payload_type
        super().__init_subclass__(**kwargs)

    def payload(self, spec: GeneratorSpec | None) -> T | None:
        """
        Return the payload of this generator's variant, or `None` if it is not set.

        Raises:
            EmptyOwningObjectError: If *spec* is `None`.
        """

        if spec is None:
            raise EmptyOwningObjectError()
        return getattr(spec, self.kind, None)

    def generate(self, ctx: ReconcileContext, spec: GeneratorSpec | None, namespace: str) -> list[ParameterElement]:
        """
        Produce the parameter elements for *spec*. A spec that does not set this generator's variant produces no
        elements.

        Args:
            ctx: The context of the reconciliation.
            spec: The generator specification.
            namespace: The namespace of the GitOpsSet. Objects referenced by the generator are looked up here.
        Raises:
            EmptyOwningObjectError: If *spec* is `None`.
            GitOpsSetError: If the elements can not be produced.
        """

        payload = self.payload(spec)
        if payload is None:
            return []
        return self.generate_elements(ctx, payload, namespace)

    @abstractmethod
    def generate_elements(self, ctx: ReconcileContext, payload: T, namespace: str) -> list[ParameterElement]:
        """
        Produce the parameter elements for the generator's payload.
        """

        raise NotImplementedError

    def interval(self, spec: GeneratorSpec) -> timedelta | None:
        """
        Return how long to wait before the elements should be generated again, or `NO_REQUEUE` if the generator has
        nothing to poll.
        """

        return NO_REQUEUE
