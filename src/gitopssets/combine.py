"""
Combines the elements of several generators into the elements that templates are rendered with.
"""

from collections.abc import Sequence
from typing import Literal

from gitopssets.tools.types import ParameterElement

EmptyGeneratorsPolicy = Literal["none", "single"]


def cartesian_product(results: Sequence[Sequence[ParameterElement]]) -> list[ParameterElement]:
    """
    Fold the element lists into their cartesian product, merging the elements of each combination into one. The last
    list varies fastest, and keys of later lists win over keys of earlier lists. The product of no lists is a single
    empty element; if any list is empty, the product is empty.
    """

    acc = [ParameterElement({})]
    for elements in results:
        acc = [ParameterElement({**left, **right}) for left in acc for right in elements]
    return acc


def combine(
    results: Sequence[Sequence[ParameterElement]], empty_generators: EmptyGeneratorsPolicy = "none"
) -> list[ParameterElement]:
    """
    Combine the element lists of the active generators of a GitOpsSet, in declaration order.

    Args:
        results: One list of elements per active generator.
        empty_generators: What to produce when there are no active generators at all: `none` produces no elements,
            `single` produces one empty element.
    """

    if not results:
        return [ParameterElement({})] if empty_generators == "single" else []
    return cartesian_product(results)
