import pytest

from gitopssets.combine import EmptyGeneratorsPolicy, cartesian_product, combine
from gitopssets.tools.types import ParameterElement


def elements(*items: dict) -> list[ParameterElement]:
    return [ParameterElement(item) for item in items]


def test__cartesian_product__last_list_varies_fastest() -> None:
    result = cartesian_product(
        [
            elements({"a": 1}, {"a": 2}),
            elements({"b": 1}, {"b": 2}, {"b": 3}),
        ]
    )
    assert result == [
        {"a": 1, "b": 1},
        {"a": 1, "b": 2},
        {"a": 1, "b": 3},
        {"a": 2, "b": 1},
        {"a": 2, "b": 2},
        {"a": 2, "b": 3},
    ]


def test__cartesian_product__later_keys_win() -> None:
    assert cartesian_product([elements({"a": 1, "b": 1}), elements({"b": 2})]) == [{"a": 1, "b": 2}]


def test__cartesian_product__of_no_lists_is_a_single_empty_element() -> None:
    assert cartesian_product([]) == [{}]


def test__cartesian_product__with_an_empty_list_is_empty() -> None:
    assert cartesian_product([elements({"a": 1}), []]) == []


def test__cartesian_product__does_not_modify_the_inputs() -> None:
    left, right = elements({"a": 1}), elements({"a": 2, "b": 2})
    cartesian_product([left, right])
    assert left == [{"a": 1}]
    assert right == [{"a": 2, "b": 2}]


@pytest.mark.parametrize(("policy", "expected"), [("none", []), ("single", [{}])])
def test__combine__without_generators(policy: EmptyGeneratorsPolicy, expected: list) -> None:
    assert combine([], policy) == expected


@pytest.mark.parametrize("policy", ["none", "single"])
def test__combine__with_generators(policy: EmptyGeneratorsPolicy) -> None:
    assert combine([elements({"a": 1}, {"a": 2})], policy) == [{"a": 1}, {"a": 2}]
    assert combine([elements({"a": 1}), []], policy) == []
