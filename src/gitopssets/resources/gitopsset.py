from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, ClassVar

from gitopssets.resources import API_VERSION, GROUP, KubernetesResource, LabelSelector, ObjectMetadata
from gitopssets.resources.inventory import ResourceInventory
from gitopssets.tools.duration import parse_duration

READY_CONDITION = "Ready"


@dataclass
class ListGenerator:
    """
    Generates one element per entry of a hard-coded list.
    """

    elements: list[Any] = field(default_factory=list)


@dataclass
class ConfigGenerator:
    """
    Generates one element per ConfigMap or Secret, either referenced by name or matched by a label selector (or
    both). The object's data becomes the element.
    """

    kind: str
    """ Either `ConfigMap` or `Secret`. """

    name: str = ""
    """ The name of an object in the GitOpsSet's namespace. """

    selector: LabelSelector | None = None
    """ Matches objects in the GitOpsSet's namespace. """


@dataclass
class GitRepositoryGeneratorFileItem:
    path: str
    """ Path of a YAML or JSON file in the repository. """


@dataclass
class GitRepositoryGeneratorDirectoryItem:
    path: str
    """ A glob pattern matched against the repository. """

    exclude: bool = False
    """ Remove paths matching the pattern from the result instead of adding them. """


@dataclass
class GitRepositoryGenerator:
    """
    Generates from the files or directories of the latest artifact of a Flux `GitRepository`.
    """

    repositoryRef: str
    """ Name of a `GitRepository` in the GitOpsSet's namespace. """

    files: list[GitRepositoryGeneratorFileItem] = field(default_factory=list)
    """ Files to parse; each file becomes one element. """

    directories: list[GitRepositoryGeneratorDirectoryItem] = field(default_factory=list)
    """ Rules for identifying directories; each directory becomes one element. """


@dataclass
class HeadersReference:
    kind: str
    """ Either `ConfigMap` or `Secret`. """

    name: str


@dataclass
class APIClientGenerator:
    """
    Generates from the JSON response of an HTTP endpoint.
    """

    endpoint: str
    method: str = "GET"
    interval: str = "5m"
    """ How often the endpoint is polled. """

    body: Any = None
    """ If set, the request is sent as a POST request with this value as the JSON body. """

    headersRef: HeadersReference | None = None
    """ A ConfigMap or Secret whose keys and values are sent as request headers. """

    jsonPath: str | None = None
    """ Extract the elements from the response with a JSONPath expression. """

    singleElement: bool = False
    """ The response is a single JSON object that becomes the only element. """

    @property
    def poll_interval(self) -> timedelta:
        return parse_duration(self.interval)


@dataclass
class ClusterGenerator:
    """
    Generates one element per GitopsCluster that matches the selector.
    """

    selector: LabelSelector = field(default_factory=LabelSelector)


@dataclass
class GitOpsSetNestedGenerator:
    """
    The generators that can be nested in a matrix generator.
    """

    list: ListGenerator | None = None
    config: ConfigGenerator | None = None
    gitRepository: GitRepositoryGenerator | None = None
    apiClient: APIClientGenerator | None = None
    cluster: ClusterGenerator | None = None


@dataclass
class MatrixGenerator:
    """
    Generates the cartesian product of the elements of its nested generators.
    """

    generators: list[GitOpsSetNestedGenerator] = field(default_factory=list)


@dataclass
class GitOpsSetGenerator:
    """
    Exactly one of the fields must be set.
    """

    list: ListGenerator | None = None
    config: ConfigGenerator | None = None
    gitRepository: GitRepositoryGenerator | None = None
    apiClient: APIClientGenerator | None = None
    cluster: ClusterGenerator | None = None
    matrix: MatrixGenerator | None = None


def configured_generator_kinds(spec: GitOpsSetGenerator | GitOpsSetNestedGenerator) -> list[str]:
    """
    Return the names of the generator fields that are set on *spec*.
    """

    return [f.name for f in fields(spec) if getattr(spec, f.name) is not None]


@dataclass
class GitOpsSetTemplate:
    content: Any
    """ A resource manifest with placeholders, either as a mapping or as YAML text. """


@dataclass
class GitOpsSetSpec:
    generators: list[GitOpsSetGenerator] = field(default_factory=list)
    """ Generators produce the data inserted into the templates. """

    templates: list[GitOpsSetTemplate] = field(default_factory=list)
    """ Templates are rendered once per generated element. """

    suspend: bool = False
    """ Suspended GitOpsSets are not reconciled. """


@dataclass
class Condition:
    type: str
    status: str
    reason: str
    message: str
    lastTransitionTime: str
    observedGeneration: int | None = None


@dataclass
class GitOpsSetStatus:
    observedGeneration: int = 0
    conditions: list[Condition] = field(default_factory=list)
    inventory: ResourceInventory | None = None

    def get_condition(self, type: str) -> Condition | None:
        for condition in self.conditions:
            if condition.type == type:
                return condition
        return None

    def set_condition(self, condition: Condition) -> None:
        """
        Add or replace the condition of the same type. The transition time is preserved if the status did not change.
        """

        existing = self.get_condition(condition.type)
        if existing is None:
            self.conditions.append(condition)
            return
        if existing.status == condition.status:
            condition.lastTransitionTime = existing.lastTransitionTime
        self.conditions[self.conditions.index(existing)] = condition


@dataclass(kw_only=True)
class GitOpsSet(KubernetesResource, api_version=API_VERSION):
    """
    A GitOpsSet combines a set of generators with a set of templates. Every element produced by the generators is
    rendered into each template, and the resulting resources are applied to the cluster.
    """

    metadata: ObjectMetadata
    spec: GitOpsSetSpec = field(default_factory=GitOpsSetSpec)
    status: GitOpsSetStatus = field(default_factory=GitOpsSetStatus)

    PLURAL: ClassVar[str] = "gitopssets"

    CRD: ClassVar = {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {
            "name": f"{PLURAL}.{GROUP}",
        },
        "spec": {
            "group": GROUP,
            "names": {
                "kind": "GitOpsSet",
                "listKind": "GitOpsSetList",
                "plural": PLURAL,
                "singular": "gitopsset",
            },
            "scope": "Namespaced",
            "versions": [
                {
                    "name": API_VERSION.split("/")[1],
                    "served": True,
                    "storage": True,
                    "subresources": {"status": {}},
                    "additionalPrinterColumns": [
                        {
                            "name": "Ready",
                            "type": "string",
                            "jsonPath": '.status.conditions[?(@.type=="Ready")].status',
                        },
                        {
                            "name": "Status",
                            "type": "string",
                            "jsonPath": '.status.conditions[?(@.type=="Ready")].message',
                        },
                    ],
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "x-kubernetes-preserve-unknown-fields": True,
                        }
                    },
                }
            ],
        },
    }

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or "default"

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.metadata.name}"
