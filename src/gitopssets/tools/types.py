from typing import Any, NewType


Manifest = NewType("Manifest", dict[str, Any])
""" Represents a Kubernetes manifest. """

Manifests = NewType("Manifests", list[Manifest])
""" Represents a list of Kubernetes manifests. """

ParameterElement = NewType("ParameterElement", dict[str, Any])
"""
Represents one row of data produced by a generator. Keys are unique field names; values can be anything that a
generator can read from its source (strings, bytes, numbers, nested mappings and lists). Templates must not rely on
the order of the keys.
"""
